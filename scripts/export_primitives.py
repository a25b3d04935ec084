"""Low-level exporter primitives.

This module holds small, dependency-free helpers shared across collectors,
the routine table, and writers (address formatting, stable identifiers,
best-effort Ghidra calls).
"""

from __future__ import annotations

from typing import Any


def addr_str(addr: Any) -> str | None:
    if addr is None:
        return None
    try:
        return addr.toString()
    except Exception:
        try:
            return str(addr)
        except Exception:
            return None


def addr_to_int(addr_text: str | None) -> int:
    if addr_text is None:
        return -1
    try:
        text = addr_text
        if ":" in text:
            text = text.split(":")[-1]
        return int(text, 16)
    except Exception:
        return -1


def sanitize_addr_id(addr_text: str | None) -> str:
    if addr_text is None:
        return "unknown"
    return addr_text.replace(":", "_").replace("0x", "")


def addr_id(prefix: str, addr_text: str | None) -> str:
    return f"{prefix}_{sanitize_addr_id(addr_text)}"


def maybe_call(obj, method_name):
    try:
        method = getattr(obj, method_name)
    except Exception:
        return None
    try:
        return method()
    except Exception:
        return None


def function_name(func) -> str | None:
    if func is None:
        return None
    name = maybe_call(func, "getName")
    return str(name) if name is not None else None


def function_addr(func) -> str | None:
    if func is None:
        return None
    return addr_str(maybe_call(func, "getEntryPoint"))
