"""Call-site reconstruction from a function's outgoing references.

Ghidra attaches PARAM references to the instructions that load call arguments
and call-flow references to the call instructions themselves. Walking a
function's references in address order, every PARAM reference seen since the
previous call belongs to the next call.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from export_primitives import addr_str, addr_to_int, function_addr, function_name, maybe_call
from routines import function_at

REF_KIND_PARAM = "param"
REF_KIND_CALL = "call"

PARAM_REF_TYPE_NAME = "PARAM"


@dataclass(frozen=True)
class CallSite:
    """A call instruction with the parameter references feeding it.

    `callee` is None when no function exists at the call destination.
    """

    callsite: str | None
    callee: Any
    callee_address: str | None
    params: tuple[Any, ...] = ()

    @property
    def resolved(self) -> bool:
        return self.callee is not None


def reference_kind(ref: Any) -> str | None:
    try:
        ref_type = ref.getReferenceType()
    except Exception:
        return None
    if ref_type is None:
        return None
    if str(maybe_call(ref_type, "getName")) == PARAM_REF_TYPE_NAME:
        return REF_KIND_PARAM
    if maybe_call(ref_type, "isFlow") and maybe_call(ref_type, "isCall"):
        return REF_KIND_CALL
    return None


def collect_function_references(program: Any, func: Any) -> list[Any]:
    body = maybe_call(func, "getBody")
    if body is None:
        return []
    ref_manager = program.getReferenceManager()
    references = []
    # Source iteration is ascending by address; refs sharing a source keep manager order.
    for from_addr in ref_manager.getReferenceSourceIterator(body, True):
        references.extend(ref_manager.getReferencesFrom(from_addr))
    return references


def extract_call_sites(program: Any, func: Any) -> list[CallSite]:
    call_sites: list[CallSite] = []
    params: list[Any] = []
    for ref in collect_function_references(program, func):
        kind = reference_kind(ref)
        if kind == REF_KIND_PARAM:
            params.append(ref)
        elif kind == REF_KIND_CALL:
            to_addr = ref.getToAddress()
            call_sites.append(
                CallSite(
                    callsite=addr_str(ref.getFromAddress()),
                    callee=function_at(program, to_addr),
                    callee_address=addr_str(to_addr),
                    params=tuple(params),
                )
            )
            params = []
    return call_sites


def calls_to(call_sites: Iterable[CallSite], routine: Any) -> list[CallSite]:
    if routine is None:
        return []
    target = addr_to_int(function_addr(routine))
    return [
        call_site
        for call_site in call_sites
        if call_site.resolved and addr_to_int(function_addr(call_site.callee)) == target
    ]


def param_record(ref: Any) -> dict[str, Any]:
    ref_type = maybe_call(ref, "getReferenceType")
    return {
        "from": addr_str(maybe_call(ref, "getFromAddress")),
        "to": addr_str(maybe_call(ref, "getToAddress")),
        "ref_type": str(maybe_call(ref_type, "getName")) if ref_type is not None else None,
        "operand_index": maybe_call(ref, "getOperandIndex"),
    }


def call_site_record(
    call_site: CallSite,
    routine_names_by_addr: Mapping[int, str] | None = None,
) -> dict[str, Any]:
    routine_name = None
    if routine_names_by_addr and call_site.resolved:
        routine_name = routine_names_by_addr.get(addr_to_int(function_addr(call_site.callee)))
    return {
        "callsite": call_site.callsite,
        "callee": {
            "name": function_name(call_site.callee),
            "address": function_addr(call_site.callee) or call_site.callee_address,
            "resolved": call_site.resolved,
        },
        "routine": routine_name,
        "params": [param_record(ref) for ref in call_site.params],
    }
