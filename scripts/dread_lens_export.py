# Export reconstructed call sites and well-known routines for a Metroid Dread NSO.
# @category DreadLens
# @runtime PyGhidra

import traceback

from export_cli import parse_args, print_usage, resolve_pack_root
from export_options import AnalyzerOptions
from outputs.io import ensure_dir, write_text
from pipeline.collect import collect_pipeline_inputs
from pipeline.layout import PackLayout
from pipeline.write import existing_pack_is_current, write_pack
from routines import unresolved_routines
from versions import STATUS_UNRECOGNIZED, program_hashes

from ghidra.framework import Application
from ghidra.util import SystemUtilities


def _report(collected):
    identification = collected.identification
    if not identification.supported_format:
        print("Dread Lens: unsupported executable format %s; skipping analysis." % identification.executable_format)
        return
    if identification.status == STATUS_UNRECOGNIZED:
        print("Dread Lens: unrecognized build %s; only version-independent routines resolved." % (
            ", ".join(identification.hashes) or "(no hash)"
        ))
    else:
        print("Dread Lens: identified build %s (%s)" % (identification.version, identification.matched_by))
    missing = unresolved_routines(collected.routines)
    if missing:
        print("Dread Lens: unresolved routines: %s" % ", ".join(missing))
    if collected.cancelled:
        print("Dread Lens: analysis cancelled after %d functions" % len(collected.functions))


def export_pack(pack_root, program, options):
    layout = PackLayout.from_root(pack_root)
    if not options.force_reanalysis and existing_pack_is_current(layout, program_hashes(program), options):
        print("Dread Lens pack is up to date: %s (pass force_reanalysis=1 to rebuild)" % pack_root)
        return None
    collected = collect_pipeline_inputs(program, options, monitor)
    _report(collected)
    return write_pack(
        layout,
        collected,
        options,
        ghidra_version=str(Application.getApplicationVersion()),
    )


def main():
    args = getScriptArgs()
    out_dir, raw_options, show_help = parse_args(args)
    if show_help:
        print_usage()
        return
    if out_dir is None:
        if SystemUtilities.isInHeadlessMode():
            print("Output directory required in headless mode.")
            print_usage()
            return
        out_dir = askDirectory("Dread Lens export directory", "Select").getAbsolutePath()
    pack_root = resolve_pack_root(out_dir)
    options = AnalyzerOptions.from_options(raw_options)
    try:
        manifest = export_pack(pack_root, currentProgram, options)
    except Exception:
        error_path = PackLayout.from_root(pack_root).error_path
        try:
            ensure_dir(pack_root)
            write_text(error_path, traceback.format_exc())
        except OSError:
            pass
        print("Dread Lens export failed; see %s" % error_path)
        raise
    if manifest is not None:
        print("Dread Lens export complete: %s" % pack_root)


main()
