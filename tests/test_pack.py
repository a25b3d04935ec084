import json
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import pyarrow.parquet as pq

from export_options import AnalyzerOptions
from ghidra_dummies import DummyFunction, DummyMonitor, DummyProgram, call, param
from outputs.payloads import build_callsites_payload, pack_is_current
from pipeline.collect import collect_pipeline_inputs
from pipeline.layout import PackLayout
from pipeline.write import existing_pack_is_current, write_pack
from versions import MATCHED_BY_WILDCARD, STATUS_UNSUPPORTED_FORMAT, program_hashes

GUARD_ACQUIRE_ADDR = 0x71011F3000
GUARD_RELEASE_ADDR = 0x71011F3010
READ_CONFIG_ADDR = 0x71000003D4
INIT_ADDR = 0x7100400000
OTHER_ADDR = 0x7100500000
MISSING_ADDR = 0x7100999000


def _program(**kwargs):
    functions = [
        DummyFunction("__cxa_guard_acquire", GUARD_ACQUIRE_ADDR, size=0x10),
        DummyFunction("__cxa_guard_release", GUARD_RELEASE_ADDR, size=0x10),
        DummyFunction("ReadConfigValue", READ_CONFIG_ADDR),
        DummyFunction("static_init_config", INIT_ADDR),
        DummyFunction("other", OTHER_ADDR),
        DummyFunction("imported", 0x7100600000, external=True),
    ]
    references = [
        param(INIT_ADDR + 0x4, 0x7102000000),
        call(INIT_ADDR + 0x8, GUARD_ACQUIRE_ADDR),
        param(INIT_ADDR + 0x10, 0x7103000000),
        param(INIT_ADDR + 0x14, 0x7103000100),
        call(INIT_ADDR + 0x18, READ_CONFIG_ADDR),
        param(INIT_ADDR + 0x20, 0x7102000000),
        call(INIT_ADDR + 0x24, GUARD_RELEASE_ADDR),
        call(OTHER_ADDR + 0x4, MISSING_ADDR),
        param(OTHER_ADDR + 0x8, 0x7103000200),
    ]
    return DummyProgram(functions=functions, references=references, **kwargs)


def _load_json(path):
    return json.loads(Path(path).read_text())


class CollectTests(unittest.TestCase):
    def test_collects_call_sites_for_scannable_functions(self):
        collected = collect_pipeline_inputs(_program(), AnalyzerOptions.defaults())
        self.assertEqual(collected.identification.version, "1.0.0")
        names = [func.getName() for func in collected.functions]
        self.assertNotIn("imported", names)
        self.assertEqual(collected.functions_total, 5)
        init_sites = collected.call_sites_by_func["%010x" % INIT_ADDR]
        self.assertEqual([len(site.params) for site in init_sites], [1, 2, 1])
        other_sites = collected.call_sites_by_func["%010x" % OTHER_ADDR]
        self.assertEqual(len(other_sites), 1)
        self.assertFalse(other_sites[0].resolved)

    def test_unsupported_format_skips_collection(self):
        program = _program(executable_format="Executable and Linking Format (ELF)")
        collected = collect_pipeline_inputs(program, AnalyzerOptions.defaults())
        self.assertEqual(collected.identification.status, STATUS_UNSUPPORTED_FORMAT)
        self.assertEqual(collected.functions, [])
        self.assertEqual(collected.routines, {})

    def test_function_limit(self):
        collected = collect_pipeline_inputs(_program(), AnalyzerOptions.from_options({"max_functions": 2}))
        self.assertEqual(len(collected.functions), 2)
        self.assertTrue(collected.functions_truncated)
        self.assertEqual(collected.functions_total, 5)

    def test_cancellation_stops_between_functions(self):
        monitor = DummyMonitor(cancel_after=3)
        collected = collect_pipeline_inputs(_program(), AnalyzerOptions.defaults(), monitor)
        self.assertTrue(collected.cancelled)
        self.assertEqual(len(collected.functions), 3)

    def test_unrecognized_build_keeps_common_routines(self):
        collected = collect_pipeline_inputs(
            _program(md5="00" * 16),
            AnalyzerOptions.from_options({"allow_unhashed_builds": 0}),
        )
        self.assertIsNone(collected.identification.version)
        self.assertIsNone(collected.routines["__cxa_guard_acquire"])
        self.assertIsNotNone(collected.routines["ReadConfigValue"])
        payload = build_callsites_payload(collected)
        init_entry = [entry for entry in payload["functions"] if entry["function"]["name"] == "static_init_config"][0]
        self.assertEqual([site["routine"] for site in init_entry["callsites"]], [None, "ReadConfigValue", None])


class WritePackTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.layout = PackLayout.from_root(Path(self._tmp.name) / "dread.lens")

    def tearDown(self):
        self._tmp.cleanup()

    def _write(self, program, options=None):
        options = options or AnalyzerOptions.defaults()
        collected = collect_pipeline_inputs(program, options)
        return write_pack(self.layout, collected, options, ghidra_version="11.1")

    def test_writes_manifest_routines_and_callsites(self):
        manifest = self._write(_program())
        self.assertEqual(_load_json(self.layout.manifest_path), manifest)
        self.assertEqual(manifest["identification"]["version"], "1.0.0")
        self.assertEqual(manifest["analysis"]["status"], "complete")
        self.assertEqual(manifest["analysis"]["callsites_total"], 4)
        self.assertEqual(manifest["options"]["symbol_source"], "ANALYSIS")
        self.assertEqual(manifest["ghidra_version"], "11.1")

        routines = _load_json(self.layout.root / "routines.json")
        self.assertEqual(routines["version"], "1.0.0")
        self.assertEqual(routines["unresolved"], ["unk1", "unk2"])

        callsites = _load_json(self.layout.callsites_dir / "index.json")
        self.assertEqual(callsites["total_functions"], 5)
        init_entry = [entry for entry in callsites["functions"] if entry["function"]["name"] == "static_init_config"][0]
        self.assertEqual(
            [site["routine"] for site in init_entry["callsites"]],
            ["__cxa_guard_acquire", "ReadConfigValue", "__cxa_guard_release"],
        )

    def test_writes_fact_tables(self):
        self._write(_program())
        facts_index = _load_json(self.layout.facts_dir / "index.json")
        self.assertEqual([table["name"] for table in facts_index["tables"]], ["callsites", "functions", "routines"])

        rows = pq.read_table(str(self.layout.facts_dir / "callsites.parquet")).to_pylist()
        self.assertEqual(len(rows), 4)
        unresolved = [row for row in rows if not row["resolved"]]
        self.assertEqual(len(unresolved), 1)
        self.assertIsNone(unresolved[0]["callee_id"])
        config_read = [row for row in rows if row["routine_name"] == "ReadConfigValue"][0]
        self.assertEqual(config_read["param_count"], 2)
        self.assertEqual(config_read["param_refs"], ["%010x" % 0x7103000000, "%010x" % 0x7103000100])

    def test_renders_views(self):
        self._write(_program())
        guarded = _load_json(self.layout.views_dir / "guarded_initializers.json")
        self.assertEqual([row["name"] for row in guarded["functions"]], ["static_init_config"])
        self.assertEqual(guarded["_lens"]["view_id"], "guarded_initializers")
        config_reads = _load_json(self.layout.views_dir / "config_reads.json")
        self.assertEqual(len(config_reads["callsites"]), 1)
        self.assertEqual(config_reads["callsites"][0]["param_count"], 2)

    def test_unsupported_format_writes_skipped_manifest_only(self):
        manifest = self._write(_program(executable_format="Portable Executable (PE)"))
        self.assertEqual(manifest["analysis"]["status"], "skipped")
        self.assertEqual(manifest["identification"]["status"], STATUS_UNSUPPORTED_FORMAT)
        self.assertTrue(self.layout.manifest_path.is_file())
        self.assertFalse((self.layout.root / "routines.json").exists())
        self.assertFalse((self.layout.facts_dir / "index.json").exists())

    def test_existing_pack_is_current_for_same_binary(self):
        program = _program()
        hashes = {"md5": program.getExecutableMD5()}
        options = AnalyzerOptions.defaults()
        self.assertFalse(existing_pack_is_current(self.layout, hashes, options))
        self._write(program)
        self.assertTrue(existing_pack_is_current(self.layout, hashes, options))
        self.assertFalse(existing_pack_is_current(self.layout, {"md5": "00" * 16}, options))
        forced = AnalyzerOptions.from_options({"force_reanalysis": 1})
        self.assertTrue(existing_pack_is_current(self.layout, hashes, forced))

    def test_skipped_pack_is_never_current(self):
        manifest = self._write(_program(executable_format="Portable Executable (PE)"))
        options = AnalyzerOptions.defaults()
        self.assertFalse(pack_is_current(manifest, manifest.get("binary_hashes") or {}, options))
        self.assertFalse(pack_is_current(None, {"md5": "x"}, options))

    def test_truncated_pack_is_not_current(self):
        program = _program()
        limited = AnalyzerOptions.from_options({"max_functions": 1})
        manifest = self._write(program, limited)
        self.assertTrue(manifest["analysis"]["functions_truncated"])
        hashes = program_hashes(program)
        self.assertFalse(existing_pack_is_current(self.layout, hashes, AnalyzerOptions.defaults()))
        self.assertFalse(existing_pack_is_current(self.layout, hashes, limited))

    def test_wildcard_pack_is_not_current_once_wildcard_is_disabled(self):
        program = _program(md5="00" * 16)
        manifest = self._write(program)
        self.assertEqual(manifest["identification"]["matched_by"], MATCHED_BY_WILDCARD)
        hashes = program_hashes(program)
        self.assertTrue(existing_pack_is_current(self.layout, hashes, AnalyzerOptions.defaults()))
        strict = AnalyzerOptions.from_options({"allow_unhashed_builds": 0})
        self.assertFalse(existing_pack_is_current(self.layout, hashes, strict))

    def test_renamed_symbol_source_is_not_current(self):
        program = _program()
        self._write(program)
        renamed = AnalyzerOptions.from_options({"force_rename": 1})
        self.assertFalse(existing_pack_is_current(self.layout, program_hashes(program), renamed))

    def test_failed_rewrite_leaves_no_current_pack(self):
        program = _program()
        options = AnalyzerOptions.defaults()
        self._write(program)
        with mock.patch("pipeline.write.write_fact_tables", side_effect=OSError("disk full")):
            with self.assertRaises(OSError):
                self._write(program, AnalyzerOptions.from_options({"force_reanalysis": 1}))
        self.assertFalse(self.layout.manifest_path.exists())
        self.assertFalse(existing_pack_is_current(self.layout, program_hashes(program), options))

    def test_unsupported_rewrite_removes_previous_outputs(self):
        self._write(_program())
        self.assertTrue((self.layout.facts_dir / "callsites.parquet").is_file())
        manifest = self._write(_program(executable_format="Portable Executable (PE)"))
        self.assertEqual(manifest["analysis"]["status"], "skipped")
        self.assertTrue(self.layout.manifest_path.is_file())
        self.assertFalse((self.layout.root / "routines.json").exists())
        for path in (self.layout.callsites_dir, self.layout.facts_dir, self.layout.views_dir):
            self.assertFalse(path.exists())

    def test_error_path_sits_in_pack_root(self):
        self.assertEqual(self.layout.error_path, self.layout.root / "export_error.txt")


if __name__ == "__main__":
    unittest.main()
