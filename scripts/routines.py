"""Well-known internal routines and their per-build addresses."""

from __future__ import annotations

from typing import Any, Mapping

from export_primitives import addr_str, addr_to_int, maybe_call

GUARD_ACQUIRE = "__cxa_guard_acquire"
GUARD_RELEASE = "__cxa_guard_release"
READ_CONFIG_VALUE = "ReadConfigValue"

# Routines that moved between builds. A build missing from a row has no known address.
VERSIONED_ROUTINE_ADDRESSES: dict[str, dict[str, str]] = {
    GUARD_ACQUIRE: {
        "1.0.0": "0x71011f3000",
        "1.0.1": "0x71011f37e0",
    },
    GUARD_RELEASE: {
        "1.0.0": "0x71011f3010",
        "1.0.1": "0x71011f37f0",
    },
}

# Same address in every recognized build.
COMMON_ROUTINE_ADDRESSES: dict[str, str] = {
    READ_CONFIG_VALUE: "0x71000003d4",
    "unk1": "0x7100080124",
    "unk2": "0x7100000250",
}

ROUTINE_NAMES: tuple[str, ...] = tuple(VERSIONED_ROUTINE_ADDRESSES) + tuple(
    COMMON_ROUTINE_ADDRESSES
)


def routine_addresses(version: str | None) -> dict[str, str | None]:
    addresses: dict[str, str | None] = {}
    for name, by_version in VERSIONED_ROUTINE_ADDRESSES.items():
        addresses[name] = by_version.get(version) if version else None
    addresses.update(COMMON_ROUTINE_ADDRESSES)
    return addresses


def parse_address(program: Any, addr_text: str | None):
    if not addr_text:
        return None
    factory = maybe_call(program, "getAddressFactory")
    if factory is None:
        return None
    try:
        return factory.getAddress(addr_text)
    except Exception:
        return None


def function_at(program: Any, addr: Any):
    """Function whose entry point is `addr`, or None."""

    if addr is None:
        return None
    if isinstance(addr, str):
        addr = parse_address(program, addr)
        if addr is None:
            return None
    try:
        return program.getFunctionManager().getFunctionAt(addr)
    except Exception:
        return None


def resolve_routines(program: Any, version: str | None) -> dict[str, Any]:
    resolved: dict[str, Any] = {}
    for name, addr_text in routine_addresses(version).items():
        resolved[name] = function_at(program, addr_text)
    return resolved


def unresolved_routines(resolved: Mapping[str, Any]) -> list[str]:
    return sorted(name for name, func in resolved.items() if func is None)


def routine_names_by_addr(resolved: Mapping[str, Any]) -> dict[int, str]:
    """Map resolved routine entry points (as ints) back to their routine name."""

    names: dict[int, str] = {}
    for name, func in resolved.items():
        if func is None:
            continue
        entry = addr_to_int(addr_str(maybe_call(func, "getEntryPoint")))
        if entry >= 0:
            names[entry] = name
    return names
