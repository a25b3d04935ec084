#!/usr/bin/env python3
"""Render the views of a dread.lens pack by running its SQL over the parquet facts."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

import duckdb


def _read_index(pack_root: Path, name: str) -> dict[str, Any]:
    index_path = pack_root / name / "index.json"
    if not index_path.is_file():
        raise FileNotFoundError(f"{name}/index.json not found under {pack_root}")
    return json.loads(index_path.read_text())


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def _connect(pack_root: Path) -> duckdb.DuckDBPyConnection:
    """In-memory database with one view per fact table."""

    con = duckdb.connect(database=":memory:")
    for table in _read_index(pack_root, "facts").get("tables") or []:
        parquet_path = pack_root / table["paths"][0]
        con.execute(f"CREATE VIEW {table['name']} AS SELECT * FROM read_parquet({_quote(str(parquet_path))})")
    return con


def _query_rows(con: duckdb.DuckDBPyConnection, query_path: Path) -> list[dict[str, Any]]:
    result = con.execute(query_path.read_text())
    columns = [desc[0] for desc in result.description or ()]
    return [dict(zip(columns, row)) for row in result.fetchall()]


def _render_view(
    pack_root: Path,
    output_root: Path,
    view: dict[str, Any],
    views_version: str | None,
    con: duckdb.DuckDBPyConnection,
) -> None:
    query_path = pack_root / view["query_ref"]
    if not query_path.is_file():
        raise FileNotFoundError(f"Query source not found: {view['query_ref']}")
    payload: dict[str, Any] = {
        view.get("output_key") or "rows": _query_rows(con, query_path),
        "_lens": {
            "view_id": view["id"],
            "query_ref": view["query_ref"],
            "version": views_version,
        },
    }
    output_path = output_root / view["output_path"]
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=True, default=str) + "\n")


def render_views(
    pack_root: Path,
    *,
    output_root: Path | None = None,
    view_ids: set[str] | None = None,
) -> None:
    pack_root = Path(pack_root).resolve()
    views_index = _read_index(pack_root, "views")
    output_root = Path(output_root or pack_root).resolve()
    con = _connect(pack_root)
    try:
        for view in views_index.get("views") or []:
            if view_ids and view["id"] not in view_ids:
                continue
            _render_view(pack_root, output_root, view, views_index.get("views_version"), con)
    finally:
        con.close()


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--pack", default=".", help="Path to a dread.lens pack root.")
    parser.add_argument("--out", default=None, help="Output root for rendered views (defaults to the pack root).")
    parser.add_argument("--view", action="append", default=None, help="Render only this view id (repeatable).")
    return parser.parse_args(argv)


def main(argv: list[str]) -> int:
    args = parse_args(argv)
    render_views(
        Path(args.pack),
        output_root=Path(args.out) if args.out else None,
        view_ids=set(args.view) if args.view else None,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
