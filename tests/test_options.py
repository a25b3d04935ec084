import contextlib
import io
import os
import unittest

from export_cli import parse_args, print_usage, resolve_pack_root
from export_options import (
    SOURCE_ANALYSIS,
    SOURCE_USER_DEFINED,
    AnalyzerOptions,
    analysis_priority,
    parse_flag,
)


class ParseArgsTests(unittest.TestCase):
    def test_defaults(self):
        out_dir, options, show_help = parse_args([])
        self.assertIsNone(out_dir)
        self.assertFalse(show_help)
        self.assertEqual(
            options,
            {
                "force_reanalysis": 0,
                "force_rename": 0,
                "allow_unhashed_builds": 1,
                "max_functions": 0,
            },
        )

    def test_positional_out_dir_and_overrides(self):
        out_dir, options, _ = parse_args(["out", "force_rename=1", "max_functions=25", "allow_unhashed_builds=off"])
        self.assertEqual(out_dir, "out")
        self.assertEqual(options["force_rename"], 1)
        self.assertEqual(options["max_functions"], 25)
        self.assertEqual(options["allow_unhashed_builds"], 0)

    def test_out_dir_option_and_help(self):
        out_dir, _options, show_help = parse_args(["out_dir=/tmp/packs", "--help"])
        self.assertEqual(out_dir, "/tmp/packs")
        self.assertTrue(show_help)

    def test_invalid_and_unknown_options_are_reported(self):
        stdout = io.StringIO()
        with contextlib.redirect_stdout(stdout):
            _out_dir, options, _ = parse_args(["max_functions=lots", "colour=blue"])
        self.assertEqual(options["max_functions"], 0)
        self.assertIn("Invalid value for max_functions: lots", stdout.getvalue())
        self.assertIn("Unknown option: colour", stdout.getvalue())

    def test_usage_lists_options(self):
        stdout = io.StringIO()
        with contextlib.redirect_stdout(stdout):
            print_usage()
        self.assertIn("force_reanalysis=0", stdout.getvalue())
        self.assertIn("allow_unhashed_builds=1", stdout.getvalue())

    def test_resolve_pack_root(self):
        self.assertEqual(resolve_pack_root("out"), os.path.join("out", "dread.lens"))
        self.assertEqual(resolve_pack_root("custom.lens"), "custom.lens")


class AnalyzerOptionsTests(unittest.TestCase):
    def test_defaults(self):
        options = AnalyzerOptions.defaults()
        self.assertFalse(options.force_reanalysis)
        self.assertFalse(options.force_rename)
        self.assertTrue(options.allow_unhashed_builds)
        self.assertIsNone(options.function_limit())
        self.assertEqual(options.symbol_source(), SOURCE_ANALYSIS)

    def test_from_parsed_args(self):
        _out_dir, raw, _ = parse_args(["force_rename=1", "force_reanalysis=yes", "max_functions=5"])
        options = AnalyzerOptions.from_options(raw)
        self.assertTrue(options.force_rename)
        self.assertTrue(options.force_reanalysis)
        self.assertEqual(options.function_limit(), 5)
        self.assertEqual(options.symbol_source(), SOURCE_USER_DEFINED)

    def test_negative_limit_is_unbounded(self):
        self.assertIsNone(AnalyzerOptions.from_options({"max_functions": -3}).function_limit())

    def test_unknown_options_are_ignored(self):
        options = AnalyzerOptions.from_options({"label": "nightly"})
        self.assertEqual(options, AnalyzerOptions.defaults())
        self.assertIs(AnalyzerOptions.from_options(options), options)

    def test_pack_options_ignore_force_reanalysis(self):
        forced = AnalyzerOptions.from_options({"force_reanalysis": 1, "max_functions": 4})
        plain = AnalyzerOptions.from_options({"max_functions": 4})
        self.assertEqual(forced.pack_options(), plain.pack_options())
        self.assertNotIn("force_reanalysis", forced.pack_options())

    def test_manifest_payload(self):
        payload = AnalyzerOptions.from_options({"force_rename": 1}).as_manifest()
        self.assertEqual(
            payload,
            {
                "force_reanalysis": False,
                "force_rename": True,
                "allow_unhashed_builds": True,
                "max_functions": None,
                "symbol_source": SOURCE_USER_DEFINED,
            },
        )

    def test_parse_flag(self):
        self.assertTrue(parse_flag("on", 0))
        self.assertFalse(parse_flag("0", 1))
        self.assertTrue(parse_flag(None, 1))
        self.assertFalse(parse_flag("nope", 1))

    def test_analysis_priority_steps_after_function_id(self):
        self.assertEqual(analysis_priority(0), 801)
        self.assertEqual(analysis_priority(3), 804)
        self.assertLess(analysis_priority(1), analysis_priority(2))


if __name__ == "__main__":
    unittest.main()
