#!/usr/bin/env python
import os
import shutil
import subprocess
import sys
from pathlib import Path

from export_cli import resolve_pack_root
from pipeline.layout import PackLayout


def usage(exit_code=1):
    print("Usage:", file=sys.stderr)
    print("  dread_lens <binary> [-o <output_dir>] [key=value ...]", file=sys.stderr)
    print("  dread_lens <pack_root> [--view <id> ...]", file=sys.stderr)
    print("Default output dir: out", file=sys.stderr)
    raise SystemExit(exit_code)


def parse_args(argv):
    binary_path = None
    out_dir = "out"
    out_dir_set = False
    script_args = []
    idx = 0
    count = len(argv)
    while idx < count:
        arg = argv[idx]
        idx += 1
        if arg in ("-h", "--help"):
            usage(0)
        if arg in ("-o", "--output"):
            if idx >= count:
                print("Missing value for -o/--output.", file=sys.stderr)
                usage(1)
            out_dir = argv[idx]
            out_dir_set = True
            idx += 1
            continue
        if "=" in arg or arg.startswith("-"):
            script_args.append(arg)
            continue
        if binary_path is None:
            binary_path = arg
        else:
            script_args.append(arg)
    if not binary_path:
        usage(1)
    return binary_path, out_dir, out_dir_set, script_args


def resolve_binary(binary_path):
    binary_file = Path(binary_path)
    if binary_file.is_file():
        return binary_file
    resolved = shutil.which(binary_path)
    if resolved and Path(resolved).is_file():
        return Path(resolved)
    print(f"Binary not found: {binary_path}", file=sys.stderr)
    raise SystemExit(1)


def find_pack_root(path):
    if not path.is_dir():
        return None
    if path.name.endswith(".lens"):
        return path
    candidate = Path(resolve_pack_root(str(path)))
    if candidate.is_dir():
        return candidate
    return None


def _run_view_renderer(pack_root, *, out_dir, script_args):
    pack_root = pack_root.resolve()
    runner_path = pack_root / "views" / "run.py"
    if not runner_path.is_file():
        print(f"View runner not found: {runner_path}", file=sys.stderr)
        raise SystemExit(1)
    cmd = [sys.executable, str(runner_path), "--pack", str(pack_root)]
    if out_dir:
        cmd.extend(["--out", out_dir])
    cmd.extend(script_args)
    result = subprocess.run(cmd)
    if result.returncode != 0:
        raise SystemExit(result.returncode)


def main(argv=None):
    if argv is None:
        argv = sys.argv[1:]
    binary_path, out_dir, out_dir_set, script_args = parse_args(argv)
    pack_root = find_pack_root(Path(binary_path))
    if pack_root is not None:
        _run_view_renderer(
            pack_root,
            out_dir=out_dir if out_dir_set else None,
            script_args=script_args,
        )
        return

    binary_file = resolve_binary(binary_path)

    install_dir = os.environ.get("GHIDRA_INSTALL_DIR")
    if not install_dir:
        print(
            "GHIDRA_INSTALL_DIR is not set. Point it at a Ghidra install with the "
            "Switch loader available. For view rendering, pass a pack root (dread.lens).",
            file=sys.stderr,
        )
        raise SystemExit(1)

    from pyghidra import core as pyghidra_core

    root_dir = Path(os.environ.get("DREAD_LENS_ROOT", Path(__file__).resolve().parent.parent)).resolve()
    script_path = root_dir / "scripts" / "dread_lens_export.py"
    if not script_path.is_file():
        print(
            "Could not locate scripts/dread_lens_export.py. Run from repo root or set DREAD_LENS_ROOT.",
            file=sys.stderr,
        )
        raise SystemExit(1)

    # Ghidra's ProjectLocator requires an absolute path.
    out_dir_path = Path(out_dir).resolve()
    project_dir = out_dir_path / "ghidra_project"
    out_dir_path.mkdir(parents=True, exist_ok=True)
    layout = PackLayout.from_root(resolve_pack_root(str(out_dir_path)))
    error_path = layout.error_path
    error_path.unlink(missing_ok=True)

    with pyghidra_core._flat_api(
        str(binary_file),
        str(project_dir),
        binary_file.stem,
        analyze=True,
        program_name=binary_file.name,
        nested_project_location=False,
        install_dir=Path(install_dir),
    ) as script:
        script.run(str(script_path), [str(out_dir_path)] + script_args)

    if error_path.is_file():
        print(f"Dread Lens export failed; see {error_path}", file=sys.stderr)
        raise SystemExit(1)
    if not layout.manifest_path.is_file():
        print(f"Dread Lens export failed; missing {layout.manifest_path}", file=sys.stderr)
        raise SystemExit(1)


if __name__ == "__main__":
    main(sys.argv[1:])
