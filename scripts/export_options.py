"""Analyzer option parsing and normalization."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from export_config import (
    DEFAULT_ALLOW_UNHASHED_BUILDS,
    DEFAULT_FORCE_REANALYSIS,
    DEFAULT_FORCE_RENAME,
    DEFAULT_MAX_FUNCTIONS,
    FUNCTION_ID_ANALYSIS_PRIORITY,
)

FLAG_OPTION_DEFAULTS: tuple[tuple[str, int], ...] = (
    ("force_reanalysis", DEFAULT_FORCE_REANALYSIS),
    ("force_rename", DEFAULT_FORCE_RENAME),
    ("allow_unhashed_builds", DEFAULT_ALLOW_UNHASHED_BUILDS),
)

BOUND_OPTION_DEFAULTS: tuple[tuple[str, int], ...] = (
    ("max_functions", DEFAULT_MAX_FUNCTIONS),
)

OPTION_DEFAULTS = FLAG_OPTION_DEFAULTS + BOUND_OPTION_DEFAULTS
OPTION_KEYS = tuple(key for key, _default in OPTION_DEFAULTS)

SOURCE_ANALYSIS = "ANALYSIS"
SOURCE_USER_DEFINED = "USER_DEFINED"

_TRUE_WORDS = ("1", "true", "yes", "on")


def parse_flag(value: Any, default: int) -> bool:
    if value is None:
        return bool(default)
    if isinstance(value, bool):
        return value
    try:
        return int(value) != 0
    except Exception:
        return str(value).strip().lower() in _TRUE_WORDS


def _parse_int(value: Any, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except Exception:
        return default


@dataclass(frozen=True)
class AnalyzerOptions:
    """Normalized analyzer options with defaults.

    `force_reanalysis` and `force_rename` only change how the export stage
    treats an existing pack and which symbol source it records; the core
    queries run the same either way.
    """

    force_reanalysis: bool
    force_rename: bool
    allow_unhashed_builds: bool
    max_functions: int

    @classmethod
    def from_options(cls, options: Mapping[str, Any] | None) -> AnalyzerOptions:
        if isinstance(options, AnalyzerOptions):
            return options
        options = options or {}
        values: dict[str, Any] = {}
        for key, default in FLAG_OPTION_DEFAULTS:
            values[key] = parse_flag(options.get(key), default)
        for key, default in BOUND_OPTION_DEFAULTS:
            values[key] = max(_parse_int(options.get(key, default), default), 0)
        return cls(**values)

    @classmethod
    def defaults(cls) -> AnalyzerOptions:
        return cls.from_options({})

    def function_limit(self) -> int | None:
        return self.max_functions if self.max_functions > 0 else None

    def symbol_source(self) -> str:
        return SOURCE_USER_DEFINED if self.force_rename else SOURCE_ANALYSIS

    def as_manifest(self) -> dict[str, Any]:
        payload: dict[str, Any] = {key: getattr(self, key) for key in OPTION_KEYS}
        payload["max_functions"] = self.function_limit()
        payload["symbol_source"] = self.symbol_source()
        return payload

    def pack_options(self) -> dict[str, Any]:
        """Manifest options that shape pack contents; `force_reanalysis` does not."""

        payload = self.as_manifest()
        payload.pop("force_reanalysis")
        return payload


def analysis_priority(offset: int) -> int:
    """Priority for the analyzer stage `offset` steps after function ID analysis."""

    return FUNCTION_ID_ANALYSIS_PRIORITY + offset + 1
