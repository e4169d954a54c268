"""CLI-level tests."""

from __future__ import annotations

import io
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path

from inkstream.main import main as inkstream_main

TEMPLATE_SOURCE = """
from inkstream.template_blocks import Composite, HelperCall, Reference, Text

TEMPLATE = Composite(
    [
        Text("Hello "),
        HelperCall("upper", bodies={"block": Reference("name")}),
        Text("!"),
    ]
)
"""


class RenderCliTests(unittest.TestCase):
    def test_render_command_streams_output(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            template_path = Path(tmp_dir) / "hello.py"
            template_path.write_text(TEMPLATE_SOURCE, encoding="utf-8")
            output = io.StringIO()
            with redirect_stdout(output):
                status = inkstream_main(["render", str(template_path), "--set", "name=bob"])

        self.assertEqual(status, 0)
        self.assertEqual(output.getvalue(), "Hello BOB!\n")

    def test_render_reads_data_files(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            root = Path(tmp_dir)
            (root / "site.yaml").write_text("name: yaml\n", encoding="utf-8")
            template_path = root / "site.py"
            template_path.write_text(
                "from inkstream.template_blocks import Reference\nTEMPLATE = Reference('data.site.name')\n",
                encoding="utf-8",
            )
            output = io.StringIO()
            with redirect_stdout(output):
                status = inkstream_main(["render", str(template_path), "--data", str(root / "site.yaml")])

        self.assertEqual(status, 0)
        self.assertEqual(output.getvalue(), "yaml\n")

    def test_render_lifts_template_front_matter(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            template_path = Path(tmp_dir) / "titled.py"
            template_path.write_text(
                "from inkstream.template_blocks import Reference\n"
                "FRONT_MATTER = '---\\ntitle: From front-matter\\n---\\n'\n"
                "TEMPLATE = Reference('title')\n",
                encoding="utf-8",
            )
            output = io.StringIO()
            with redirect_stdout(output):
                status = inkstream_main(["render", str(template_path)])

        self.assertEqual(status, 0)
        self.assertEqual(output.getvalue(), "From front-matter\n")

    def test_missing_template_exits_with_cli_error(self) -> None:
        stderr = io.StringIO()
        with redirect_stderr(stderr):
            with self.assertRaises(SystemExit) as context:
                inkstream_main(["render", "/definitely/not/here.py"])

        self.assertEqual(context.exception.code, 2)
        self.assertIn("error: template file", stderr.getvalue())

    def test_invalid_option_exits_with_cli_error(self) -> None:
        stderr = io.StringIO()
        with tempfile.TemporaryDirectory() as tmp_dir:
            template_path = Path(tmp_dir) / "hello.py"
            template_path.write_text(TEMPLATE_SOURCE, encoding="utf-8")
            with redirect_stderr(stderr):
                with self.assertRaises(SystemExit) as context:
                    inkstream_main(["render", str(template_path), "--option", "on_helper_error=ignore"])

        self.assertEqual(context.exception.code, 2)
        self.assertIn("invalid on_helper_error", stderr.getvalue())


class DiscoveryCliTests(unittest.TestCase):
    def test_extensions_command(self) -> None:
        output = io.StringIO()
        with redirect_stdout(output):
            status = inkstream_main(["extensions"])
        self.assertEqual(status, 0)
        lines = output.getvalue().splitlines()
        self.assertIn("json", lines)
        self.assertIn("yaml", lines)

    def test_plugins_command_without_plugins(self) -> None:
        output = io.StringIO()
        with redirect_stdout(output):
            status = inkstream_main(["plugins"])
        self.assertEqual(status, 0)
        self.assertEqual(output.getvalue(), "")
