"""Argument parsing helpers for the Ghidra exporter script.

Ghidra scripts receive a flat list of strings. The exporter keeps parsing logic
lightweight by supporting:
- `-h/--help` to print usage
- a positional output directory
- `key=value` overrides for analyzer options
"""

from __future__ import annotations

import os
from typing import Any

from export_config import PACK_DIRNAME
from export_options import OPTION_DEFAULTS


def _default_options() -> dict[str, Any]:
    options: dict[str, Any] = {}
    for key, default in OPTION_DEFAULTS:
        options[key] = default
    return options


def parse_args(args: list[str]) -> tuple[str | None, dict[str, Any], bool]:
    options = _default_options()
    out_dir: str | None = None
    show_help = False

    for arg in args:
        if arg in ("-h", "--help"):
            show_help = True
            continue
        if "=" in arg:
            key, value = arg.split("=", 1)
            if key == "out_dir":
                out_dir = value
                continue
            if key in options:
                try:
                    options[key] = int(value)
                except Exception:
                    lowered = (value or "").strip().lower()
                    if lowered in ("true", "yes", "on"):
                        options[key] = 1
                    elif lowered in ("false", "no", "off"):
                        options[key] = 0
                    else:
                        print("Invalid value for %s: %s" % (key, value))
            else:
                print("Unknown option: %s" % key)
        else:
            if out_dir is None:
                out_dir = arg

    return out_dir, options, show_help


def print_usage():
    print("Dread Lens exporter")
    print("Usage:")
    print("  <script> <out_dir> [key=value ...]")
    print("Options:")
    for key, default in OPTION_DEFAULTS:
        print("  %s=%d" % (key, default))


def resolve_pack_root(out_dir: str) -> str:
    if out_dir.endswith(".lens"):
        return out_dir
    return os.path.join(out_dir, PACK_DIRNAME)
