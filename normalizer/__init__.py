"""
Normalizer module for parsing weights and AWB keys.
"""
from .weight_parser import parse_weight, has_valid_weight, normalize_key

__all__ = ['parse_weight', 'has_valid_weight', 'normalize_key']
