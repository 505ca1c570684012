"""
Unit tests for the three-way comparison engine.
"""
import dataclasses
import os
import sys
import unittest
from datetime import timezone

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from parsers.base_parser import Record
from reconciler.comparison_engine import (
    CHECKPOINT_POST_ROWS,
    CHECKPOINT_POST_STATS,
    CHECKPOINT_PRE_UNION,
    ComparisonEngine,
    DuplicateInfo,
    check_tolerance,
    compare,
)


def records(*pairs):
    """Build a record list from (key, weight) pairs."""
    return [Record(key, weight) for key, weight in pairs]


def row_for(result, key):
    """Find the row for a key."""
    matches = [row for row in result.rows if row.key == key]
    assert len(matches) == 1, f"expected one row for {key}, got {len(matches)}"
    return matches[0]


class TestUnionAndPresence(unittest.TestCase):
    """Tests for key union and presence classification."""

    def test_union_completeness(self):
        """Every key from any source appears in exactly one row."""
        jaster = records(("A", 1.0), ("B", 2.0), ("A", 3.0))
        cis = records(("B", 2.0), ("C", 4.0))
        unifikasi = records(("D", 5.0), ("A", 1.0), ("D", 5.0))

        result = compare(jaster, cis, unifikasi)
        keys = [row.key for row in result.rows]

        self.assertEqual(sorted(keys), ["A", "B", "C", "D"])
        self.assertEqual(len(keys), len(set(keys)))
        self.assertEqual(result.stats.total_unique_awbs, 4)

    def test_rows_in_first_seen_order(self):
        """Rows follow JASTER order, then new CIS keys, then new UNIFIKASI keys."""
        result = compare(
            records(("J2", 1), ("J1", 1)),
            records(("C1", 1), ("J1", 1)),
            records(("U1", 1), ("C1", 1), ("J2", 1)),
        )
        self.assertEqual([row.key for row in result.rows], ["J2", "J1", "C1", "U1"])

    def test_singleton_in_cis(self):
        """A key only in CIS is classified as CIS-only."""
        result = compare([], records(("X", 5)), [])
        row = row_for(result, "X")

        self.assertFalse(row.presence.in_jaster)
        self.assertTrue(row.presence.in_cis)
        self.assertFalse(row.presence.in_unifikasi)
        self.assertEqual(row.discrepancies, ("Missing in JASTER", "Missing in UNIFIKASI"))
        self.assertTrue(row.weights_match)
        self.assertEqual(result.stats.in_cis_only, 1)
        self.assertEqual(result.stats.weight_mismatches, 0)

    def test_zero_weight_counts_as_present(self):
        """A weight of 0 is a real weight, not a missing record."""
        result = compare(records(("Z", 0)), records(("Z", 0.0)), [])
        row = row_for(result, "Z")

        self.assertTrue(row.presence.in_jaster)
        self.assertTrue(row.presence.in_cis)
        self.assertEqual(row.jaster_weight, 0)
        self.assertTrue(row.weights_match)
        self.assertEqual(row.discrepancies, ("Missing in UNIFIKASI",))

    def test_absent_weights_are_none(self):
        """Absent sources report None weights."""
        result = compare(records(("A", 7.5)), [], [])
        row = row_for(result, "A")

        self.assertEqual(row.jaster_weight, 7.5)
        self.assertIsNone(row.cis_weight)
        self.assertIsNone(row.unifikasi_weight)
        self.assertEqual(row.weight_by_source.present(), [7.5])


class TestWeightMatch(unittest.TestCase):
    """Tests for the tolerance comparison."""

    def test_within_tolerance(self):
        """10.000 and 10.009 match (difference 0.009)."""
        result = compare(records(("A", 10.000)), records(("A", 10.009)), [])
        self.assertTrue(row_for(result, "A").weights_match)

    def test_at_tolerance_boundary(self):
        """10.000 and 10.01 do not match (difference is not below 0.01)."""
        result = compare(records(("A", 10.000)), records(("A", 10.01)), [])
        row = row_for(result, "A")

        self.assertFalse(row.weights_match)
        self.assertEqual(row.discrepancies, ("Missing in UNIFIKASI", "Weight mismatch"))

    def test_first_present_weight_is_pivot(self):
        """Weights are compared to the first present weight, not max minus min."""
        # Span is 0.014 but each weight is within 0.01 of the JASTER weight
        result = compare(
            records(("A", 10.005)),
            records(("A", 10.000)),
            records(("A", 10.014)),
        )
        self.assertTrue(row_for(result, "A").weights_match)

    def test_chain_beyond_pivot_tolerance(self):
        """Consecutive gaps below tolerance still mismatch if the pivot gap is not."""
        result = compare(
            records(("A", 10.000)),
            records(("A", 10.009)),
            records(("A", 10.018)),
        )
        self.assertFalse(row_for(result, "A").weights_match)

    def test_pivot_skips_absent_source(self):
        """When JASTER is absent, the CIS weight is the pivot."""
        engine = ComparisonEngine()
        self.assertTrue(engine.weights_match([5.0, 5.005]))
        result = compare([], records(("A", 5.0)), records(("A", 5.005)))
        self.assertTrue(row_for(result, "A").weights_match)

    def test_single_weight_always_matches(self):
        """One or zero weights trivially match."""
        engine = ComparisonEngine()
        self.assertTrue(engine.weights_match([]))
        self.assertTrue(engine.weights_match([42.0]))

    def test_custom_tolerance(self):
        """A wider tolerance accepts larger differences."""
        engine = ComparisonEngine(tolerance=0.5)
        result = engine.compare(records(("A", 10)), records(("A", 10.4)), records(("A", 9.6)))
        self.assertTrue(row_for(result, "A").weights_match)

    def test_unusable_tolerance_rejected(self):
        """NaN, infinite, zero and negative tolerances raise ValueError up front."""
        for tolerance in (float('nan'), float('inf'), 0, -0.01):
            with self.subTest(tolerance=tolerance):
                with self.assertRaises(ValueError):
                    ComparisonEngine(tolerance=tolerance)
                with self.assertRaises(ValueError):
                    compare(records(("A", 1.0)), records(("A", 1.0)), [], tolerance=tolerance)

    def test_check_tolerance(self):
        """Valid tolerances come back as floats."""
        self.assertEqual(check_tolerance("0.05"), 0.05)
        self.assertEqual(ComparisonEngine(tolerance=1).tolerance, 1.0)


class TestDuplicates(unittest.TestCase):
    """Tests for first-wins collapsing and duplicate detection."""

    def test_first_weight_wins(self):
        """Conflicting duplicates keep the first weight and are flagged."""
        result = compare(records(("A", 10), ("A", 20)), [], [])
        row = row_for(result, "A")

        self.assertEqual(row.jaster_weight, 10)
        self.assertTrue(row.has_duplicates)
        self.assertEqual(row.duplicate_info, DuplicateInfo(jaster=True, cis=False, unifikasi=False))
        self.assertIn("Duplicate in JASTER", row.discrepancies)

    def test_identical_duplicates_not_flagged(self):
        """Repeated identical weights are harmless."""
        result = compare(records(("A", 10), ("A", 10)), [], [])
        row = row_for(result, "A")

        self.assertEqual(row.jaster_weight, 10)
        self.assertFalse(row.has_duplicates)
        self.assertIsNone(row.duplicate_info)
        self.assertNotIn("Duplicate in JASTER", row.discrepancies)

    def test_duplicate_uses_exact_equality(self):
        """Duplicates differing by less than the tolerance are still a conflict."""
        result = compare([], records(("A", 10.0), ("A", 10.001)), [])
        self.assertTrue(row_for(result, "A").duplicate_info.cis)

    def test_later_duplicate_does_not_affect_match(self):
        """Only the first weight takes part in the cross-source comparison."""
        result = compare(
            records(("A", 10), ("A", 20)),
            records(("A", 10)),
            records(("A", 10)),
        )
        row = row_for(result, "A")

        self.assertTrue(row.weights_match)
        self.assertEqual(row.discrepancies, ("Duplicate in JASTER",))
        self.assertEqual(result.stats.perfect_matches, 1)

    def test_discrepancy_order(self):
        """Tags appear as missing, mismatch, then duplicates, each in source order."""
        result = compare(
            [],
            records(("A", 1.0), ("A", 2.0)),
            records(("A", 3.0), ("A", 3.0), ("A", 4.0)),
        )
        row = row_for(result, "A")

        self.assertEqual(row.discrepancies, (
            "Missing in JASTER",
            "Weight mismatch",
            "Duplicate in CIS",
            "Duplicate in UNIFIKASI",
        ))
        self.assertEqual(row.duplicate_info, DuplicateInfo(jaster=False, cis=True, unifikasi=True))


class TestStatistics(unittest.TestCase):
    """Tests for aggregate statistics."""

    def test_perfect_match(self):
        """Equal weights in all three sources are a perfect match."""
        result = compare(
            records(("AWB1", 12.00)),
            records(("AWB1", 12.00)),
            records(("AWB1", 12.00)),
        )
        row = row_for(result, "AWB1")

        self.assertTrue(row.weights_match)
        self.assertEqual(row.discrepancies, ())
        self.assertEqual(result.stats.in_all_three, 1)
        self.assertEqual(result.stats.perfect_matches, 1)
        self.assertEqual(result.stats.weight_mismatches, 0)

    def test_three_way_mismatch(self):
        """One differing weight among three is a mismatch."""
        result = compare(
            records(("AWB2", 12.00)),
            records(("AWB2", 12.00)),
            records(("AWB2", 15.00)),
        )
        row = row_for(result, "AWB2")

        self.assertFalse(row.weights_match)
        self.assertEqual(row.discrepancies, ("Weight mismatch",))
        self.assertEqual(result.stats.in_all_three, 1)
        self.assertEqual(result.stats.weight_mismatches, 1)
        self.assertEqual(result.stats.perfect_matches, 0)

    def test_pair_mismatch_counted(self):
        """Mismatches between two sources count towards weight_mismatches."""
        result = compare(records(("A", 1)), [], records(("A", 2)))
        stats = result.stats

        self.assertEqual(stats.in_jaster_and_unifikasi, 1)
        self.assertEqual(stats.weight_mismatches, 1)
        self.assertEqual(stats.in_all_three, 0)

    def test_pair_counters(self):
        """Each two-source combination has its own counter."""
        result = compare(
            records(("JC", 1), ("JU", 1)),
            records(("JC", 1), ("CU", 1)),
            records(("JU", 1), ("CU", 1)),
        )
        stats = result.stats

        self.assertEqual(stats.in_jaster_and_cis, 1)
        self.assertEqual(stats.in_jaster_and_unifikasi, 1)
        self.assertEqual(stats.in_cis_and_unifikasi, 1)
        self.assertEqual(stats.weight_mismatches, 0)

    def test_stats_sum_invariant(self):
        """Each key lands in exactly one presence bucket."""
        result = compare(
            records(("A", 1), ("B", 2), ("C", 3), ("E", 5), ("A", 9)),
            records(("A", 1), ("B", 2.5), ("D", 4), ("F", 6)),
            records(("A", 1), ("C", 3), ("D", 4), ("G", 7)),
        )
        s = result.stats
        buckets = (
            s.in_all_three + s.in_jaster_only + s.in_cis_only + s.in_unifikasi_only
            + s.in_jaster_and_cis + s.in_jaster_and_unifikasi + s.in_cis_and_unifikasi
        )

        self.assertEqual(buckets, s.total_unique_awbs)
        self.assertEqual(s.total_unique_awbs, 7)
        self.assertEqual(s.in_all_three, 1)
        self.assertEqual(s.in_jaster_and_cis, 1)
        self.assertEqual(s.in_jaster_and_unifikasi, 1)
        self.assertEqual(s.in_cis_and_unifikasi, 1)
        self.assertEqual(s.in_jaster_only, 1)
        self.assertEqual(s.in_cis_only, 1)
        self.assertEqual(s.in_unifikasi_only, 1)
        self.assertEqual(s.perfect_matches, 1)
        self.assertEqual(s.weight_mismatches, 1)

    def test_empty_input(self):
        """No records gives no rows and zero rates instead of division errors."""
        result = compare([], [], [])

        self.assertEqual(result.rows, ())
        self.assertEqual(result.stats.total_unique_awbs, 0)
        self.assertEqual(result.stats.perfect_match_rate, 0.0)
        self.assertEqual(result.stats.mismatch_rate, 0.0)
        self.assertEqual(result.stats.single_source_rate, 0.0)

    def test_rates(self):
        """Rates are percentages of all unique AWBs."""
        result = compare(
            records(("A", 1), ("B", 1), ("C", 1), ("D", 1)),
            records(("A", 1), ("B", 2)),
            records(("A", 1), ("B", 1)),
        )
        stats = result.stats

        self.assertAlmostEqual(stats.perfect_match_rate, 25.0)
        self.assertAlmostEqual(stats.mismatch_rate, 25.0)
        self.assertAlmostEqual(stats.single_source_rate, 50.0)


class TestResultShape(unittest.TestCase):
    """Tests for determinism, immutability and the reporter hook."""

    def setUp(self):
        self.jaster = records(("A", 1), ("B", 2), ("B", 3))
        self.cis = records(("A", 1.005), ("C", 4))
        self.unifikasi = records(("A", 2), ("C", 4))

    def test_idempotent(self):
        """Identical inputs give identical rows and stats."""
        first = compare(self.jaster, self.cis, self.unifikasi)
        second = compare(self.jaster, self.cis, self.unifikasi)

        self.assertEqual(first.rows, second.rows)
        self.assertEqual(first.stats, second.stats)

    def test_engine_reusable(self):
        """One engine instance keeps no state between calls."""
        engine = ComparisonEngine()
        first = engine.compare(self.jaster, self.cis, self.unifikasi)
        engine.compare(records(("Q", 1)), [], [])
        third = engine.compare(self.jaster, self.cis, self.unifikasi)

        self.assertEqual(first.rows, third.rows)

    def test_accepts_plain_tuples(self):
        """Any (key, weight) pairs are accepted."""
        result = compare([("A", 1.0)], [("A", 1.0)], [("A", 1.0)])
        self.assertEqual(result.stats.perfect_matches, 1)

    def test_result_is_frozen(self):
        """Results cannot be modified after the call."""
        result = compare(self.jaster, self.cis, self.unifikasi)
        with self.assertRaises(dataclasses.FrozenInstanceError):
            result.rows[0].weights_match = True
        with self.assertRaises(dataclasses.FrozenInstanceError):
            result.stats.total_unique_awbs = 0

    def test_generated_at_is_utc(self):
        """The timestamp is timezone-aware UTC."""
        result = compare([], [], [])
        self.assertEqual(result.generated_at.tzinfo, timezone.utc)

    def test_to_dict(self):
        """Rows and results serialize to plain dictionaries."""
        result = compare(self.jaster, self.cis, self.unifikasi)
        data = result.to_dict()
        row_b = next(r for r in data['rows'] if r['key'] == "B")

        self.assertEqual(row_b['weight_by_source'], {'jaster': 2, 'cis': None, 'unifikasi': None})
        self.assertEqual(row_b['duplicate_info'], {'jaster': True, 'cis': False, 'unifikasi': False})
        self.assertTrue(row_b['has_duplicates'])
        self.assertEqual(data['stats']['total_unique_awbs'], 3)
        self.assertIsInstance(data['generated_at'], str)

    def test_rows_with_issues(self):
        """Only rows with discrepancies are listed as issues."""
        result = compare(records(("OK", 1)), records(("OK", 1)), records(("OK", 1), ("BAD", 1)))
        self.assertEqual([row.key for row in result.rows_with_issues()], ["BAD"])

    def test_reporter_checkpoints(self):
        """The reporter sees every checkpoint in order."""
        calls = []
        compare(
            self.jaster, self.cis, self.unifikasi,
            reporter=lambda name, details: calls.append((name, details)),
        )

        self.assertEqual(
            [name for name, _ in calls],
            [CHECKPOINT_PRE_UNION, CHECKPOINT_POST_ROWS, CHECKPOINT_POST_STATS],
        )
        self.assertEqual(calls[0][1]['jaster'], {'records': 3, 'unique_keys': 2})
        self.assertEqual(calls[1][1], {'rows': 3})
        self.assertEqual(calls[2][1]['total_unique_awbs'], 3)

    def test_reporter_errors_propagate(self):
        """A failing reporter is not silently ignored."""
        def broken(name, details):
            raise RuntimeError("reporter failed")

        with self.assertRaises(RuntimeError):
            compare(self.jaster, self.cis, self.unifikasi, reporter=broken)


if __name__ == '__main__':
    unittest.main()
