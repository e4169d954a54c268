"""Tests for helper registration, params and helper module loading."""

from __future__ import annotations

import sys
import tempfile
import unittest
from pathlib import Path

from inkstream.engine import (
    Context,
    HelperParamSpec,
    HelperRegistry,
    HelperSpec,
    Ref,
    TemplateRegistry,
    parse_param_pairs,
    resolve_helper_params,
)
from inkstream.helpers import BUILTIN_HELPERS, load_helper_modules, register_builtin_helpers


def _noop(chunk, context, bodies, params):
    return None


class HelperRegistryTests(unittest.TestCase):
    def test_registry_resolves_aliases(self) -> None:
        registry = HelperRegistry()
        spec = HelperSpec(helper_id="upper", description="Upper.", fn=_noop, aliases=("yell",))
        registry.register(spec)
        self.assertIs(registry.get("upper"), spec)
        self.assertIs(registry.get("yell"), spec)
        self.assertIn("yell", registry)

    def test_registry_rejects_duplicate_alias(self) -> None:
        registry = HelperRegistry()
        registry.register(HelperSpec(helper_id="one", description="One.", fn=_noop, aliases=("alias",)))
        with self.assertRaises(ValueError):
            registry.register(HelperSpec(helper_id="two", description="Two.", fn=_noop, aliases=("alias",)))

    def test_registry_rejects_duplicate_id_unless_replacing(self) -> None:
        registry = HelperRegistry()
        registry.register(HelperSpec(helper_id="one", description="One.", fn=_noop, aliases=("first",)))
        with self.assertRaises(ValueError):
            registry.register(HelperSpec(helper_id="one", description="Again.", fn=_noop))

        replacement = HelperSpec(helper_id="one", description="Again.", fn=_noop)
        registry.register(replacement, replace=True)
        self.assertIs(registry.get("one"), replacement)
        self.assertNotIn("first", registry)

    def test_unknown_helper_lists_valid_ids(self) -> None:
        registry = HelperRegistry()
        register_builtin_helpers(registry)
        with self.assertRaisesRegex(ValueError, "Valid helpers: defer, eq, lower, sep, upper"):
            registry.get("missing")
        self.assertEqual(len(registry.list_specs()), len(BUILTIN_HELPERS))

    def test_template_registry_last_registration_wins(self) -> None:
        registry = TemplateRegistry()
        registry.register("page", _noop)
        registry.register(" page ", print)
        self.assertIs(registry.get("page"), print)
        with self.assertRaisesRegex(ValueError, "Registered templates: page"):
            registry.get("other")


class HelperParamTests(unittest.TestCase):
    def test_parse_param_pairs(self) -> None:
        self.assertEqual(parse_param_pairs(["a=1", " b = two=2 "]), {"a": "1", "b": "two=2"})
        with self.assertRaises(ValueError):
            parse_param_pairs(["novalue"])
        with self.assertRaises(ValueError):
            parse_param_pairs(["=value"])

    def test_defaults_coercion_and_refs(self) -> None:
        spec = HelperSpec(
            helper_id="repeat",
            description="Repeat the block.",
            fn=_noop,
            params=(
                HelperParamSpec(key="times", value_type=int, description="Count.", default=1, min_value=1),
                HelperParamSpec(key="loud", value_type=bool, description="Shout.", aliases=("shout",)),
                HelperParamSpec(key="mode", value_type=str, description="Mode.", choices=("a", "b")),
            ),
        )
        context = Context({"count": "3"})
        resolved = resolve_helper_params(
            spec=spec,
            raw_params={"times": Ref("count"), "shout": "yes", "extra": "kept"},
            context=context,
        )
        self.assertEqual(resolved, {"times": 3, "loud": True, "extra": "kept"})
        self.assertEqual(resolve_helper_params(spec=spec), {"times": 1})

        with self.assertRaises(ValueError):
            resolve_helper_params(spec=spec, raw_params={"times": "0"})
        with self.assertRaises(ValueError):
            resolve_helper_params(spec=spec, raw_params={"mode": "c"})
        with self.assertRaises(ValueError):
            resolve_helper_params(spec=spec, raw_params={"loud": "maybe"})

    def test_strict_params_reject_unknown_keys(self) -> None:
        spec = HelperSpec(
            helper_id="strict",
            description="Strict.",
            fn=_noop,
            params=(HelperParamSpec(key="name", value_type=str, description="Name.", required=True),),
            strict_params=True,
        )
        with self.assertRaisesRegex(ValueError, "unknown parameter 'other'"):
            resolve_helper_params(spec=spec, raw_params={"name": "x", "other": 1})
        with self.assertRaisesRegex(ValueError, "missing required"):
            resolve_helper_params(spec=spec, raw_params={})


class HelperModuleTests(unittest.TestCase):
    def test_load_helper_modules(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            module_dir = Path(tmp_dir)
            (module_dir / "mapping_helpers.py").write_text(
                "def shout(chunk, context, bodies, params):\n    return 'HEY'\n\nHELPERS = {'shout': shout}\n"
            )
            (module_dir / "hook_helpers.py").write_text(
                "def register_helpers(registry):\n    registry.add('quiet', lambda *args: 'psst')\n"
            )
            (module_dir / "empty_helpers.py").write_text("x = 1\n")

            sys.path.insert(0, str(module_dir))
            try:
                registry = HelperRegistry()
                loaded = load_helper_modules(registry, ["mapping_helpers", "hook_helpers"])
                self.assertEqual(loaded, ("mapping_helpers", "hook_helpers"))
                self.assertEqual(registry.helper_ids(), ("shout", "quiet"))
                with self.assertRaises(ValueError):
                    load_helper_modules(registry, ["empty_helpers"])
            finally:
                sys.path.remove(str(module_dir))
                for name in ("mapping_helpers", "hook_helpers", "empty_helpers"):
                    sys.modules.pop(name, None)
