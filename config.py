"""
Configuration and constants for the AWB weight reconciler.

This module provides:
- Default sheet names and column aliases for the three sources
- Comparison and pagination defaults
- Support for user-configurable settings via environment variables
- Loading overrides from YAML files
"""
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

# =============================================================================
# Sources
# =============================================================================

JASTER: str = "jaster"
CIS: str = "cis"
UNIFIKASI: str = "unifikasi"

# Source identifiers in comparison order
SOURCES: List[str] = [JASTER, CIS, UNIFIKASI]

# Sheet name expected in the workbook for each source
SHEET_NAMES: Dict[str, str] = {
    JASTER: "JASTER",
    CIS: "CIS",
    UNIFIKASI: "UNIFIKASI",
}

# =============================================================================
# Column Name Mappings for Parser
# =============================================================================

# Ordered aliases per field per source. First alias that matches wins.
COLUMN_MAPPINGS: Dict[str, Dict[str, List[str]]] = {
    JASTER: {
        "awb": ["AWB", "awb"],
        "weight": ["CHW", "Chw", "chw"],
    },
    CIS: {
        "awb": ["No AWB", "No. AWB", "AWB", "no awb"],
        "weight": ["Chw. Weight", "Chw Weight", "CHW Weight", "Weight", "chw. weight"],
    },
    UNIFIKASI: {
        "awb": ["SMU", "smu"],
        "weight": ["Kg", "kg", "KG", "Weight", "weight"],
    },
}

# =============================================================================
# Comparison Settings
# =============================================================================

# Absolute tolerance for two weights to count as equal
WEIGHT_MATCH_THRESHOLD: float = 0.01

# =============================================================================
# Pagination
# =============================================================================

DEFAULT_PAGE_SIZE: int = 50
PAGE_SIZE_OPTIONS: List[int] = [25, 50, 100, 200]

# =============================================================================
# File Upload
# =============================================================================

ACCEPTED_FILE_TYPES: List[str] = [".xlsx", ".xls"]
MAX_FILE_SIZE: int = 50 * 1024 * 1024  # 50 MB

FILE_ENCODINGS: List[str] = [
    "utf-8-sig",      # Excel CSV with BOM
    "utf-8",
    "cp1252",
    "iso-8859-1",
    "utf-16",
]

# =============================================================================
# Export
# =============================================================================

EXPORT_FILE_PREFIX: str = "awb-comparison-report"

# =============================================================================
# Application Info
# =============================================================================

APP_NAME: str = "AWB Weight Reconciler"
APP_VERSION: str = "1.0.0"


# =============================================================================
# Flexible Configuration System
# =============================================================================

def _alias_list(value: Any) -> List[str]:
    """Normalize a configured alias entry; a single string is one alias."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(alias) for alias in value]


class Config:
    """
    Flexible configuration manager that supports:
    - Environment variables
    - Custom YAML configuration files
    - Runtime overrides
    """

    _instance: Optional["Config"] = None
    _settings: Dict[str, Any] = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._load_defaults()
            cls._instance._load_custom_config()
        return cls._instance

    def _load_defaults(self) -> None:
        """Load default settings."""
        self._settings = {
            "weight_tolerance": float(
                os.environ.get("WEIGHT_TOLERANCE", str(WEIGHT_MATCH_THRESHOLD))
            ),
            "default_page_size": int(
                os.environ.get("DEFAULT_PAGE_SIZE", str(DEFAULT_PAGE_SIZE))
            ),
            "max_file_size": int(
                os.environ.get("MAX_FILE_SIZE_MB", str(MAX_FILE_SIZE // (1024 * 1024)))
            ) * 1024 * 1024,
            "supported_encodings": FILE_ENCODINGS,
            "column_mappings": {},
        }

    def _load_custom_config(self) -> None:
        """Load custom configuration from YAML file if available."""
        config_paths = [
            Path.cwd() / "config.yaml",
            Path.cwd() / "config.yml",
            Path.home() / ".awbreconciler" / "config.yaml",
        ]

        for config_path in config_paths:
            if config_path.exists():
                try:
                    with open(config_path, 'r', encoding='utf-8') as f:
                        custom_config = yaml.safe_load(f) or {}
                except (OSError, yaml.YAMLError) as e:
                    logger.warning("Could not load config from %s: %s", config_path, e)
                    continue
                if not isinstance(custom_config, dict):
                    logger.warning(
                        "Ignoring config %s: expected a mapping at the top level, got %s",
                        config_path, type(custom_config).__name__,
                    )
                    continue
                self._settings.update(custom_config)
                logger.info("Loaded config from %s", config_path)
                break

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value."""
        return self._settings.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value at runtime."""
        self._settings[key] = value

    @property
    def column_mappings(self) -> Dict[str, Dict[str, List[str]]]:
        """
        Get column aliases with any YAML extensions appended.

        Custom aliases are tried after the built-in ones, so a file can only
        widen what is accepted.
        """
        custom = self._settings.get("column_mappings")
        if not isinstance(custom, dict):
            custom = {}

        merged: Dict[str, Dict[str, List[str]]] = {}
        for source, fields in COLUMN_MAPPINGS.items():
            extra = custom.get(source)
            if not isinstance(extra, dict):
                extra = {}
            merged[source] = {
                name: aliases + [a for a in _alias_list(extra.get(name)) if a not in aliases]
                for name, aliases in fields.items()
            }
        return merged

    def reload(self) -> None:
        """Reload configuration from files."""
        self._load_defaults()
        self._load_custom_config()


def get_config() -> Config:
    """Get the global configuration instance."""
    return Config()


def get_weight_tolerance() -> float:
    """Get the weight match tolerance currently in effect."""
    return float(get_config().get("weight_tolerance", WEIGHT_MATCH_THRESHOLD))


def get_column_mappings() -> Dict[str, Dict[str, List[str]]]:
    """Get column aliases for every source."""
    return get_config().column_mappings
