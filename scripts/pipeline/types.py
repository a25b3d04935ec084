from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from versions import Identification


@dataclass
class FactTable:
    """Parquet fact table definition."""

    name: str
    rows: list[dict[str, Any]]
    primary_key: list[str]
    schema: list[tuple[str, str]]
    version: str = "v1"
    description: str | None = None


@dataclass
class CollectedData:
    """Raw collection outputs used by the payload and writing stages."""

    binary_info: dict[str, Any]
    hashes: dict[str, Any]
    identification: Identification
    routines: dict[str, Any]
    routine_addresses: dict[str, str | None]
    functions: list[Any]
    call_sites_by_func: dict[str, list[Any]]
    functions_total: int = 0
    functions_truncated: bool = False
    cancelled: bool = False
