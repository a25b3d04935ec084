"""Pack filesystem helpers.

JSON output is indented with sorted keys and ASCII escaping so that packs for
two builds of the game diff cleanly.
"""

from __future__ import annotations

import json
import os
from typing import Any

PathLike = str | os.PathLike[str]


def ensure_dir(path: PathLike) -> None:
    os.makedirs(path, exist_ok=True)


def write_json(path: PathLike, obj: Any) -> None:
    with open(path, "w", encoding="utf-8") as handle:
        handle.write(json.dumps(obj, indent=2, sort_keys=True, ensure_ascii=True))
        handle.write("\n")


def read_json(path: PathLike) -> Any | None:
    try:
        with open(path, encoding="utf-8") as handle:
            return json.load(handle)
    except (OSError, ValueError):
        return None


def write_text(path: PathLike, content: str) -> None:
    with open(path, "w", encoding="utf-8") as handle:
        handle.write(content)
