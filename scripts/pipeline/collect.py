"""Collection stage for the dread.lens export pipeline."""

from __future__ import annotations

from typing import Any

from collectors.callsites import extract_call_sites
from export_options import AnalyzerOptions
from export_primitives import addr_str, maybe_call
from outputs.payloads import build_binary_info
from pipeline.types import CollectedData
from routines import resolve_routines, routine_addresses
from versions import identify


def collect_functions(program: Any) -> list[Any]:
    func_manager = program.getFunctionManager()
    functions = []
    func_iter = func_manager.getFunctions(True)
    while func_iter.hasNext():
        functions.append(func_iter.next())
    functions.sort(key=lambda func: func.getEntryPoint().getOffset())
    return functions


def _is_scannable(func: Any) -> bool:
    if maybe_call(func, "isExternal"):
        return False
    if maybe_call(func, "isThunk"):
        return False
    return True


def collect_pipeline_inputs(
    program: Any,
    options: AnalyzerOptions,
    monitor: Any = None,
) -> CollectedData:
    binary_info, hashes = build_binary_info(program)
    identification = identify(
        program,
        allow_unhashed_builds=options.allow_unhashed_builds,
    )
    if not identification.supported_format:
        return CollectedData(
            binary_info=binary_info,
            hashes=hashes,
            identification=identification,
            routines={},
            routine_addresses={},
            functions=[],
            call_sites_by_func={},
        )

    version = identification.version
    routines = resolve_routines(program, version)

    functions = [func for func in collect_functions(program) if _is_scannable(func)]
    functions_total = len(functions)
    limit = options.function_limit()
    truncated = limit is not None and functions_total > limit
    if truncated:
        functions = functions[:limit]

    call_sites_by_func: dict[str, list[Any]] = {}
    scanned = []
    cancelled = False
    for func in functions:
        if monitor is not None and monitor.isCancelled():
            cancelled = True
            break
        call_sites_by_func[addr_str(func.getEntryPoint())] = extract_call_sites(program, func)
        scanned.append(func)

    return CollectedData(
        binary_info=binary_info,
        hashes=hashes,
        identification=identification,
        routines=routines,
        routine_addresses=routine_addresses(version),
        functions=scanned,
        call_sites_by_func=call_sites_by_func,
        functions_total=functions_total,
        functions_truncated=truncated,
        cancelled=cancelled,
    )
