from __future__ import annotations

import os
import platform
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from collectors.callsites import call_site_record
from export_config import DREAD_LENS_VERSION, FORMAT_VERSION, VIEWS_SCHEMA_VERSION
from export_options import AnalyzerOptions
from export_primitives import addr_id, addr_str, addr_to_int, function_addr, function_name, maybe_call
from pipeline.types import CollectedData, FactTable
from routines import routine_names_by_addr, unresolved_routines
from versions import program_hashes


def build_binary_info(program):
    info = {
        "name": maybe_call(program, "getName"),
        "executable_format": maybe_call(program, "getExecutableFormat"),
        "image_base": addr_str(maybe_call(program, "getImageBase")),
    }
    language = maybe_call(program, "getLanguage")
    if language is not None:
        info["language"] = {
            "id": str(maybe_call(language, "getLanguageID")),
            "processor": str(maybe_call(language, "getProcessor")),
            "endian": "big" if maybe_call(language, "isBigEndian") else "little",
        }
    executable_path = maybe_call(program, "getExecutablePath")
    if executable_path:
        info["executable_path"] = str(executable_path)
    hashes = program_hashes(program)
    if hashes:
        info["hashes"] = hashes
    return info, hashes


@dataclass(frozen=True)
class ExportCreatedAt:
    iso8601: str
    epoch_seconds: int
    source: str


def _resolve_created_at() -> ExportCreatedAt:
    epoch_raw = os.environ.get("SOURCE_DATE_EPOCH")
    if epoch_raw:
        try:
            epoch = int(epoch_raw)
            dt = datetime.fromtimestamp(epoch, tz=timezone.utc)
            return ExportCreatedAt(
                iso8601=dt.isoformat().replace("+00:00", "Z"),
                epoch_seconds=epoch,
                source="source_date_epoch",
            )
        except Exception:
            pass
    epoch = int(datetime.now(tz=timezone.utc).timestamp())
    dt = datetime.fromtimestamp(epoch, tz=timezone.utc)
    return ExportCreatedAt(
        iso8601=dt.isoformat().replace("+00:00", "Z"),
        epoch_seconds=epoch,
        source="runtime_utc_now",
    )


def analysis_status(collected: CollectedData) -> str:
    identification = collected.identification
    if not identification.supported_format:
        return "skipped"
    if collected.cancelled:
        return "cancelled"
    return "complete"


def build_manifest(
    collected: CollectedData,
    options: AnalyzerOptions,
    *,
    ghidra_version: str | None = None,
) -> dict[str, object]:
    created_at = _resolve_created_at()
    identification = collected.identification
    manifest: dict[str, Any] = {
        "schema": {
            "name": "dread_lens",
            "version": FORMAT_VERSION,
        },
        "dread_lens_version": DREAD_LENS_VERSION,
        "format_version": FORMAT_VERSION,
        "ghidra_version": ghidra_version,
        "created_at": created_at.iso8601,
        "created_at_epoch_seconds": created_at.epoch_seconds,
        "created_at_source": created_at.source,
        "tool": {
            "name": "dread_lens",
            "version": DREAD_LENS_VERSION,
            "revision": os.environ.get("DREAD_LENS_REVISION"),
        },
        "options": options.as_manifest(),
        "identification": identification.to_payload(),
        "analysis": {
            "status": analysis_status(collected),
            "functions_total": collected.functions_total,
            "functions_scanned": len(collected.functions),
            "functions_truncated": collected.functions_truncated,
            "callsites_total": sum(len(sites) for sites in collected.call_sites_by_func.values()),
        },
    }
    if collected.hashes:
        manifest["binary_hashes"] = collected.hashes
    binary_info = collected.binary_info
    name = binary_info.get("name")
    if isinstance(name, str) and name.strip():
        manifest["binary_name"] = name.strip()
    executable_path = binary_info.get("executable_path")
    if isinstance(executable_path, str) and executable_path.strip():
        manifest["binary_path"] = executable_path.strip()
    manifest["export_platform"] = {
        "os": platform.system().lower() or None,
        "arch": platform.machine() or None,
    }
    return manifest


def pack_is_current(manifest: Any, hashes: dict[str, Any], options: AnalyzerOptions) -> bool:
    """True when an existing manifest already covers this binary, pack format and options.

    A truncated pack is never current, and neither is one written with
    different content-shaping options (`max_functions`, `allow_unhashed_builds`,
    `force_rename`).
    """

    if not isinstance(manifest, dict) or not hashes:
        return False
    if manifest.get("format_version") != FORMAT_VERSION:
        return False
    analysis = manifest.get("analysis")
    if not isinstance(analysis, dict) or analysis.get("status") != "complete":
        return False
    if analysis.get("functions_truncated"):
        return False
    stored_options = manifest.get("options")
    if not isinstance(stored_options, dict):
        return False
    stored_options = {key: value for key, value in stored_options.items() if key != "force_reanalysis"}
    if stored_options != options.pack_options():
        return False
    return manifest.get("binary_hashes") == hashes


def build_routines_payload(collected: CollectedData) -> dict[str, Any]:
    entries = []
    for name, address in collected.routine_addresses.items():
        func = collected.routines.get(name)
        entries.append({
            "name": name,
            "address": address,
            "resolved": func is not None,
            "function": function_name(func),
        })
    entries.sort(key=lambda entry: addr_to_int(entry.get("address")))
    return {
        "version": collected.identification.version,
        "routines": entries,
        "unresolved": unresolved_routines(collected.routines),
    }


def build_callsites_payload(collected: CollectedData) -> dict[str, Any]:
    names_by_addr = routine_names_by_addr(collected.routines)
    functions = []
    for func in collected.functions:
        func_addr = function_addr(func)
        call_sites = collected.call_sites_by_func.get(func_addr) or []
        functions.append({
            "function": {
                "name": function_name(func),
                "address": func_addr,
            },
            "callsites": [call_site_record(site, names_by_addr) for site in call_sites],
        })
    return {
        "total_functions": len(functions),
        "functions": functions,
    }


def build_fact_tables(collected: CollectedData) -> list[FactTable]:
    names_by_addr = routine_names_by_addr(collected.routines)
    function_rows = []
    callsite_rows = []
    for func in collected.functions:
        func_addr = function_addr(func)
        function_id = addr_id("fn", func_addr)
        call_sites = collected.call_sites_by_func.get(func_addr) or []
        function_rows.append({
            "function_id": function_id,
            "address": func_addr,
            "name": function_name(func),
            "callsite_count": len(call_sites),
        })
        for site in call_sites:
            record = call_site_record(site, names_by_addr)
            callee = record["callee"]
            callsite_rows.append({
                "callsite_id": addr_id("cs", site.callsite),
                "function_id": function_id,
                "callsite_addr_int": addr_to_int(site.callsite),
                "callee_id": addr_id("fn", callee["address"]) if callee["resolved"] else None,
                "callee_address": callee["address"],
                "callee_name": callee["name"],
                "routine_name": record["routine"],
                "resolved": callee["resolved"],
                "param_count": len(record["params"]),
                "param_refs": [param["to"] or "unknown" for param in record["params"]],
            })

    routine_rows = []
    version = collected.identification.version
    for name, address in collected.routine_addresses.items():
        func = collected.routines.get(name)
        routine_rows.append({
            "routine_name": name,
            "version": version,
            "address": address,
            "resolved": func is not None,
            "function_name": function_name(func),
        })

    return [
        FactTable(
            name="functions",
            rows=function_rows,
            primary_key=["function_id"],
            schema=[
                ("function_id", "string"),
                ("address", "string"),
                ("name", "string"),
                ("callsite_count", "int64"),
            ],
            description="Scanned functions with their reconstructed call site counts.",
        ),
        FactTable(
            name="callsites",
            rows=callsite_rows,
            # Several call refs may share one instruction address.
            primary_key=["callsite_id", "callee_address"],
            schema=[
                ("callsite_id", "string"),
                ("function_id", "string"),
                ("callsite_addr_int", "int64"),
                ("callee_id", "string"),
                ("callee_address", "string"),
                ("callee_name", "string"),
                ("routine_name", "string"),
                ("resolved", "bool"),
                ("param_count", "int64"),
                ("param_refs", "list<string>"),
            ],
            description="Call sites in reference order with their parameter reference targets.",
        ),
        FactTable(
            name="routines",
            rows=routine_rows,
            primary_key=["routine_name"],
            schema=[
                ("routine_name", "string"),
                ("version", "string"),
                ("address", "string"),
                ("resolved", "bool"),
                ("function_name", "string"),
            ],
            description="Well-known routines resolved for the identified build.",
        ),
    ]


DEFAULT_VIEWS: tuple[dict[str, Any], ...] = (
    {
        "id": "guarded_initializers",
        "query_ref": "views/queries/guarded_initializers.sql",
        "output_path": "views/guarded_initializers.json",
        "output_key": "functions",
    },
    {
        "id": "config_reads",
        "query_ref": "views/queries/config_reads.sql",
        "output_path": "views/config_reads.json",
        "output_key": "callsites",
    },
)


def build_views_index() -> dict[str, Any]:
    return {
        "views_version": VIEWS_SCHEMA_VERSION,
        "runner_ref": "views/run.py",
        "views": [dict(view) for view in DEFAULT_VIEWS],
    }


def view_source_refs(views_index: dict[str, Any]) -> list[str]:
    refs = set()
    for view in views_index.get("views") or []:
        ref = view.get("query_ref") if isinstance(view, dict) else None
        if isinstance(ref, str) and ref.startswith("views/"):
            refs.add(ref)
    return sorted(refs)


def repo_root() -> Path:
    return Path(__file__).resolve().parents[2]
