"""Write stage for the dread.lens export pipeline."""

from __future__ import annotations

import runpy
import shutil
from pathlib import Path
from typing import Any

from export_options import AnalyzerOptions
from outputs.facts import write_fact_tables
from outputs.io import ensure_dir, read_json, write_json
from outputs.payloads import (
    build_callsites_payload,
    build_fact_tables,
    build_manifest,
    build_routines_payload,
    build_views_index,
    pack_is_current,
    repo_root,
    view_source_refs,
)
from pipeline.layout import PackLayout
from pipeline.types import CollectedData


def existing_pack_is_current(
    layout: PackLayout,
    hashes: dict[str, Any],
    options: AnalyzerOptions,
) -> bool:
    return pack_is_current(read_json(layout.manifest_path), hashes, options)


def _remove_analysis_outputs(layout: PackLayout) -> None:
    (layout.root / "routines.json").unlink(missing_ok=True)
    for path in (layout.callsites_dir, layout.facts_dir, layout.views_dir):
        if path.is_dir():
            shutil.rmtree(path)


def _copy_view_sources(views_dir: Path, views_index: dict[str, Any]) -> None:
    source_root = repo_root()
    run_src = source_root / "views" / "run.py"
    if run_src.is_file():
        shutil.copy2(run_src, views_dir / "run.py")
    for ref in view_source_refs(views_index):
        src = source_root / ref
        if not src.is_file():
            continue
        dest = views_dir / Path(ref).relative_to("views")
        ensure_dir(dest.parent)
        shutil.copy2(src, dest)


def _render_views(pack_root: Path) -> None:
    runner_path = pack_root / "views" / "run.py"
    if not runner_path.is_file():
        raise FileNotFoundError(f"View runner not found: {runner_path}")
    namespace = runpy.run_path(str(runner_path))
    render_views = namespace.get("render_views")
    if not callable(render_views):
        raise RuntimeError("views/run.py does not define render_views")
    render_views(pack_root)


def write_pack(
    layout: PackLayout,
    collected: CollectedData,
    options: AnalyzerOptions,
    *,
    ghidra_version: str | None = None,
    render_views: bool = True,
) -> dict[str, Any]:
    # No manifest while the pack is being rewritten.
    layout.manifest_path.unlink(missing_ok=True)

    manifest = build_manifest(collected, options, ghidra_version=ghidra_version)
    if not collected.identification.supported_format:
        ensure_dir(layout.root)
        _remove_analysis_outputs(layout)
        write_json(layout.manifest_path, manifest)
        return manifest

    for path in layout.iter_dirs():
        ensure_dir(path)

    write_json(layout.root / "routines.json", build_routines_payload(collected))
    write_json(layout.callsites_dir / "index.json", build_callsites_payload(collected))

    facts_index = write_fact_tables(layout.root, build_fact_tables(collected))
    write_json(layout.facts_dir / "index.json", facts_index)

    views_index = build_views_index()
    write_json(layout.views_dir / "index.json", views_index)
    _copy_view_sources(layout.views_dir, views_index)
    if render_views:
        _render_views(layout.root)

    # Manifest last: its presence marks a finished pack.
    write_json(layout.manifest_path, manifest)
    return manifest
