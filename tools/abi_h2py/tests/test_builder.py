from __future__ import annotations

import contextlib
import io
import sys
import tempfile
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))
from abi_h2py_core import (  # noqa: E402
    ConfigurationError,
    ExportMode,
    ModuleBuilder,
    ProbeParseError,
    member_numeric,
)
from abi_h2py_core._core_base import read_text_if_exists  # noqa: E402


class FakeRunner:
    def __init__(self, output: str) -> None:
        self.output = output
        self.sources: list[str] = []

    def run_probe(self, source_text: str) -> str:
        self.sources.append(source_text)
        return self.output


def load_generated(text: str) -> dict[str, object]:
    namespace: dict[str, object] = {"__name__": "generated_under_test"}
    exec(compile(text, "<generated>", "exec"), namespace)
    return namespace


class ModuleBuilderTests(unittest.TestCase):
    def test_export_mode_defaults_to_on_request(self) -> None:
        builder = ModuleBuilder("demo", runner=FakeRunner(""))
        decl = builder.constant("AF_DEMO")
        self.assertIs(decl.export_mode, ExportMode.ON_REQUEST)

    def test_export_mode_is_positional(self) -> None:
        runner = FakeRunner("FIRST=1\nSECOND=2\nTHIRD=3\n")
        builder = ModuleBuilder("demo", runner=runner)
        builder.use_export()
        builder.constant("FIRST")
        builder.no_export()
        builder.constant("SECOND")
        builder.use_export_ok()
        builder.constant("THIRD")
        builder.use_export()

        module = load_generated(builder.finalize())
        self.assertEqual(module["__all__"], ["FIRST"])
        self.assertEqual(module["__export_ok__"], ["THIRD"])
        self.assertEqual((module["FIRST"], module["SECOND"], module["THIRD"]), (1, 2, 3))

    def test_finalize_runs_probe_once_and_resets(self) -> None:
        runner = FakeRunner("DEFINED_CONSTANT=10\npoint=8,x@0+4s,y@4+4s\n")
        builder = ModuleBuilder("demo", runner=runner)
        builder.include("test.h", local=True)
        builder.use_export()
        builder.constant("DEFINED_CONSTANT")
        builder.structure("struct point", members=[member_numeric("x"), member_numeric("y")])

        probe_source = builder.probe_source()
        text = builder.finalize()
        self.assertEqual(len(runner.sources), 1)
        self.assertEqual(runner.sources[0], probe_source)
        self.assertIn('#include "test.h"', runner.sources[0])
        self.assertIn("DEFINED_CONSTANT = 10", text)
        self.assertFalse(builder.pending)
        self.assertEqual(builder.includes, [])
        self.assertIs(builder.export_mode, ExportMode.ON_REQUEST)

        builder.module("second_demo")
        self.assertEqual(builder.name, "second_demo")

    def test_module_switch_with_pending_declarations_fails(self) -> None:
        builder = ModuleBuilder("demo", runner=FakeRunner(""))
        builder.constant("AF_DEMO")
        with self.assertRaises(ConfigurationError):
            builder.module("other")

    def test_finalize_without_module_name_fails(self) -> None:
        builder = ModuleBuilder(runner=FakeRunner("AF_DEMO=1\n"))
        builder.constant("AF_DEMO")
        with self.assertRaises(ConfigurationError):
            builder.finalize()

    def test_renamed_constant(self) -> None:
        builder = ModuleBuilder("demo", runner=FakeRunner("MOONLAZER_POWER=5\n"))
        builder.constant("MOONLAZER_POWER", name="POWER")
        module = load_generated(builder.finalize())
        self.assertEqual(module["POWER"], 5)
        self.assertEqual(module["__export_ok__"], ["POWER"])

    def test_string_members_are_numeric(self) -> None:
        builder = ModuleBuilder("demo", runner=FakeRunner(""))
        decl = builder.structure("struct point", members=["x", "y"])
        self.assertEqual([member.kind for member in decl.members], ["numeric", "numeric"])
        self.assertEqual((decl.encode_name, decl.decode_name), ("encode_point", "decode_point"))

    def test_duplicate_declarations_are_rejected(self) -> None:
        builder = ModuleBuilder("demo", runner=FakeRunner(""))
        builder.structure("struct point", members=["x", "y"])
        with self.assertRaises(ConfigurationError):
            builder.structure("struct point", members=["x"], encode_func="other_encode", decode_func="other_decode")
        with self.assertRaises(ConfigurationError):
            builder.constant("X", name="encode_point")
        with self.assertRaises(ConfigurationError):
            builder.structure("struct dup", members=["a", "a"])

    def test_invalid_names_are_rejected(self) -> None:
        builder = ModuleBuilder("demo", runner=FakeRunner(""))
        with self.assertRaises(ConfigurationError):
            builder.constant("NOT-A-NAME")
        with self.assertRaises(ConfigurationError):
            builder.constant("CLASS_VALUE", name="class")
        with self.assertRaises(ConfigurationError):
            builder.structure("struct empty", members=[])
        with self.assertRaises(ConfigurationError):
            ModuleBuilder("not a module")

    def test_missing_probe_result_raises(self) -> None:
        builder = ModuleBuilder("demo", runner=FakeRunner("OTHER=1\n"))
        builder.constant("AF_DEMO")
        with self.assertRaises(ProbeParseError):
            builder.finalize()

    def test_decreasing_offsets_fail_without_writing(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            output_path = Path(temp_dir) / "demo.py"
            builder = ModuleBuilder(
                "demo",
                runner=FakeRunner("swapped=8,b@4+4s,a@0+4s\n"),
                output_path=output_path,
            )
            builder.structure("struct swapped", members=["b", "a"])
            with self.assertRaises(ConfigurationError):
                builder.write()
            self.assertFalse(output_path.exists())

    def test_context_manager_writes_pending_declarations(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            output_path = Path(temp_dir) / "pkg" / "demo.py"
            with ModuleBuilder("demo", runner=FakeRunner("AF_DEMO=3\n"), output_path=output_path) as builder:
                builder.use_export()
                builder.constant("AF_DEMO")

            self.assertTrue(output_path.exists())
            module = load_generated(output_path.read_text(encoding="utf-8"))
            self.assertEqual(module["AF_DEMO"], 3)
            self.assertFalse(builder.pending)

    def test_context_manager_skips_on_error(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            output_path = Path(temp_dir) / "demo.py"
            with self.assertRaises(RuntimeError):
                with ModuleBuilder("demo", runner=FakeRunner("AF_DEMO=3\n"), output_path=output_path) as builder:
                    builder.constant("AF_DEMO")
                    raise RuntimeError("boom")
            self.assertFalse(output_path.exists())

    def test_context_manager_without_output_path_prints_module(self) -> None:
        stdout = io.StringIO()
        with contextlib.redirect_stdout(stdout):
            with ModuleBuilder("demo", runner=FakeRunner("AF_DEMO=3\n")) as builder:
                builder.use_export()
                builder.constant("AF_DEMO")

        self.assertFalse(builder.pending)
        module = load_generated(stdout.getvalue())
        self.assertEqual(module["AF_DEMO"], 3)
        self.assertEqual(module["__all__"], ["AF_DEMO"])

    def test_generated_internal_names_are_reserved(self) -> None:
        builder = ModuleBuilder("demo", runner=FakeRunner(""))
        for name in ["_struct", "UsageError", "__all__", "__export_ok__"]:
            with self.assertRaises(ConfigurationError):
                builder.constant("SOME_VALUE", name=name)

        builder.constant("SHADOW", name="_struct_point")
        with self.assertRaises(ConfigurationError):
            builder.structure("struct point", members=["x", "y"])

        builder.structure("struct llq", members=["q"])
        with self.assertRaises(ConfigurationError):
            builder.constant("OTHER", name="_struct_llq")
        with self.assertRaises(ConfigurationError):
            builder.structure("struct msghdr", members=["cmd"], encode_func="_struct")

    def test_reserved_names_survive_finalize(self) -> None:
        builder = ModuleBuilder("demo", runner=FakeRunner("AF_DEMO=1\n"))
        builder.constant("AF_DEMO")
        builder.finalize()
        with self.assertRaises(ConfigurationError):
            builder.constant("AF_DEMO", name="UsageError")

    def test_export_mode_strings_are_exact(self) -> None:
        builder = ModuleBuilder("demo", runner=FakeRunner(""))
        builder.set_export_mode("default")
        self.assertIs(builder.export_mode, ExportMode.DEFAULT)
        for value in ["DEFAULT", "On-Request", " none"]:
            with self.assertRaises(ConfigurationError):
                builder.set_export_mode(value)

    def test_unreadable_existing_output_is_configuration_error(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            with self.assertRaises(ConfigurationError):
                read_text_if_exists(Path(temp_dir))

    def test_write_reports_drift_in_check_mode(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            output_path = Path(temp_dir) / "demo.py"
            output_path.write_text("stale\n", encoding="utf-8")

            builder = ModuleBuilder("demo", runner=FakeRunner("AF_DEMO=3\n"), output_path=output_path)
            builder.constant("AF_DEMO")
            status, diff = builder.write(check=True)

            self.assertEqual(status, "drift")
            self.assertIn("+AF_DEMO = 3", diff)
            self.assertEqual(output_path.read_text(encoding="utf-8"), "stale\n")


if __name__ == "__main__":
    unittest.main()
