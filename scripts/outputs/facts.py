"""Parquet fact table writer."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable

import pyarrow as pa
import pyarrow.parquet as pq

from outputs.io import ensure_dir
from pipeline.types import FactTable


def _arrow_type(type_name: str):
    if type_name == "string":
        return pa.string()
    if type_name == "int64":
        return pa.int64()
    if type_name == "bool":
        return pa.bool_()
    if type_name == "list<string>":
        return pa.list_(pa.string())
    raise ValueError(f"Unsupported fact column type: {type_name}")


def write_fact_tables(pack_root: Path, tables: Iterable[FactTable]) -> dict[str, Any]:
    facts_dir = Path(pack_root) / "facts"
    ensure_dir(facts_dir)

    registry_tables: list[dict[str, Any]] = []
    for table in tables:
        schema = pa.schema(
            [pa.field(name, _arrow_type(type_name), nullable=True) for name, type_name in table.schema]
        )
        arrow_table = pa.Table.from_pylist(table.rows, schema=schema)
        filename = f"{table.name}.parquet"
        pq.write_table(arrow_table, str(facts_dir / filename))
        registry_tables.append(
            {
                "name": table.name,
                "version": table.version,
                "primary_key": list(table.primary_key),
                "paths": [f"facts/{filename}"],
                "schema": [
                    {"name": name, "type": type_name}
                    for name, type_name in table.schema
                ],
                "row_count": arrow_table.num_rows,
                "description": table.description,
            }
        )

    registry_tables.sort(key=lambda entry: entry.get("name") or "")
    return {
        "schema": {"name": "dread_lens_facts", "version": "v1"},
        "tables": registry_tables,
        "table_count": len(registry_tables),
    }
