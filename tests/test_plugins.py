"""Tests for the plugin lifecycle manager and plugin loading."""

from __future__ import annotations

import asyncio
import sys
import tempfile
import unittest
from pathlib import Path

from inkstream.config import LifecycleEvent
from inkstream.engine import PluginManager, load_plugins
from inkstream.errors import DuplicatePluginNameError, InvalidPluginError, PluginError


def _make_plugin(name: str, events: tuple[str, ...], calls: list[tuple[str, str]], *, fail_on: str | None = None):
    class _Plugin:
        plugin_name = name

        def __init__(self, renderer) -> None:
            self.renderer = renderer

        def event_handlers(self):
            return {event: self._handler(event) for event in events}

        def _handler(self, event: str):
            def handle(renderer, plugin_event) -> None:
                if event == fail_on:
                    raise RuntimeError(f"{name} failed on {event}")
                calls.append((name, event))
                plugin_event.state.setdefault(name, []).append(event)

            return handle

    return _Plugin


class PluginRegistrationTests(unittest.TestCase):
    def test_attach_hook_fires_once_with_renderer(self) -> None:
        renderer = object()
        seen: list[object] = []

        class Recorder:
            plugin_name = "recorder"

            def __init__(self, renderer) -> None:
                pass

            def on_attach(self, renderer, event) -> None:
                seen.append(renderer)

        manager = PluginManager(renderer)
        attached = manager.add_plugin(Recorder)
        self.assertEqual(len(attached), 1)
        self.assertEqual(seen, [renderer])
        self.assertEqual(manager.plugin_names(), ("recorder",))

    def test_duplicate_names_are_rejected(self) -> None:
        constructed: list[str] = []

        class First:
            plugin_name = "same"

            def __init__(self, renderer) -> None:
                constructed.append("first")

        class Second:
            plugin_name = "same"

            def __init__(self, renderer) -> None:
                constructed.append("second")

            def on_attach(self, renderer, event) -> None:  # pragma: no cover - must not run
                constructed.append("second attached")

        manager = PluginManager(object())
        first = manager.add_plugin(First)[0]
        with self.assertRaises(DuplicatePluginNameError):
            manager.add_plugin(Second)
        self.assertEqual(constructed, ["first", "second"])
        self.assertEqual(manager.plugin_names(), ("same",))
        self.assertIs(manager.get_plugin("same"), first)

    def test_plugin_name_is_required(self) -> None:
        class Nameless:
            def __init__(self, renderer) -> None:
                self.plugin_name = "  "

        with self.assertRaises(InvalidPluginError):
            PluginManager(object()).add_plugin(Nameless)

    def test_failing_attach_hook_leaves_plugin_unregistered(self) -> None:
        class Broken:
            plugin_name = "broken"

            def __init__(self, renderer) -> None:
                pass

            def on_attach(self, renderer, event) -> None:
                raise RuntimeError("nope")

        manager = PluginManager(object())
        with self.assertRaises(RuntimeError):
            manager.add_plugin(Broken)
        self.assertEqual(manager.plugin_names(), ())

    def test_config_resolution_and_sequences(self) -> None:
        class Configurable:
            def __init__(self, renderer, config) -> None:
                self.plugin_name = config["name"]
                self.config = config

        manager = PluginManager(object())
        attached = manager.add_plugin(
            [{"plugin": Configurable, "name": "a", "level": 1}, {"plugin": Configurable, "name": "b"}],
            global_config={"level": 0, "shared": True},
        )
        self.assertEqual([plugin.plugin_name for plugin in attached], ["a", "b"])
        self.assertEqual(manager.get_plugin_config("a"), {"level": 1, "shared": True, "name": "a"})
        self.assertEqual(manager.get_plugin_config("b")["level"], 0)
        self.assertEqual(manager.get_global_config(), {"level": 0, "shared": True})
        self.assertIsNone(manager.get_plugin_config("missing"))

    def test_unknown_declared_event_is_rejected(self) -> None:
        class Odd:
            plugin_name = "odd"

            def __init__(self, renderer) -> None:
                pass

            def event_handlers(self):
                return {"on_everything": lambda renderer, event: None}

        with self.assertRaises(InvalidPluginError):
            PluginManager(object()).add_plugin(Odd)


class PluginDispatchTests(unittest.TestCase):
    def test_dispatch_follows_attach_order_and_skips_missing_handlers(self) -> None:
        calls: list[tuple[str, str]] = []
        state: dict[str, list[str]] = {}
        manager = PluginManager(object(), state=state)
        manager.add_plugin(_make_plugin("one", ("before_render", "after_render"), calls))
        manager.add_plugin(_make_plugin("two", ("after_render",), calls))
        manager.add_plugin(_make_plugin("three", ("before_render", "after_render"), calls))

        manager.fire_event(LifecycleEvent.BEFORE_RENDER)
        manager.fire_event("after_render")

        self.assertEqual(
            calls,
            [
                ("one", "before_render"),
                ("three", "before_render"),
                ("one", "after_render"),
                ("two", "after_render"),
                ("three", "after_render"),
            ],
        )
        self.assertEqual(state["three"], ["before_render", "after_render"])
        self.assertFalse(manager.handles("two", LifecycleEvent.BEFORE_RENDER))

    def test_failing_handler_stops_later_plugins_for_that_event(self) -> None:
        calls: list[tuple[str, str]] = []
        manager = PluginManager(object())
        manager.add_plugin(_make_plugin("one", ("before_render", "after_render"), calls))
        manager.add_plugin(_make_plugin("two", ("before_render", "after_render"), calls, fail_on="after_render"))
        manager.add_plugin(_make_plugin("three", ("before_render", "after_render"), calls))

        manager.fire_event(LifecycleEvent.BEFORE_RENDER)
        with self.assertRaisesRegex(RuntimeError, "two failed"):
            manager.fire_event(LifecycleEvent.AFTER_RENDER)

        self.assertEqual(
            calls,
            [
                ("one", "before_render"),
                ("two", "before_render"),
                ("three", "before_render"),
                ("one", "after_render"),
            ],
        )

    def test_sync_dispatch_rejects_async_handlers(self) -> None:
        class AsyncPlugin:
            plugin_name = "async"

            def __init__(self, renderer) -> None:
                pass

            async def before_render(self, renderer, event) -> None:
                pass

        manager = PluginManager(object())
        manager.add_plugin(AsyncPlugin)
        with self.assertRaises(PluginError):
            manager.fire_event(LifecycleEvent.BEFORE_RENDER)

    def test_clear_plugins_fires_detach(self) -> None:
        calls: list[tuple[str, str]] = []
        manager = PluginManager(object())
        manager.add_plugin(_make_plugin("one", ("on_detach",), calls))
        removed = manager.clear_plugins()
        self.assertEqual(list(removed), ["one"])
        self.assertEqual(calls, [("one", "on_detach")])
        self.assertEqual(len(manager), 0)

        manager.add_plugin(_make_plugin("one", ("on_detach",), calls))
        manager.clear_plugins(quiet=True)
        self.assertEqual(len(calls), 1)


class AsyncPluginDispatchTests(unittest.IsolatedAsyncioTestCase):
    async def test_async_handlers_are_awaited_in_order(self) -> None:
        calls: list[str] = []

        class Slow:
            plugin_name = "slow"

            def __init__(self, renderer) -> None:
                pass

            async def before_render(self, renderer, event) -> None:
                calls.append("slow:start")
                await asyncio.sleep(0)
                calls.append("slow:end")

        class Fast:
            plugin_name = "fast"

            def __init__(self, renderer) -> None:
                pass

            def before_render(self, renderer, event) -> None:
                calls.append(f"fast:{event.data['template']}")

        manager = PluginManager(object())
        manager.add_plugin([Slow, Fast])
        await manager.dispatch(LifecycleEvent.BEFORE_RENDER, {"template": "home"})
        self.assertEqual(calls, ["slow:start", "slow:end", "fast:home"])


class PluginLoadingTests(unittest.TestCase):
    def test_load_plugin_module(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            plugin_dir = Path(tmp_dir)
            (plugin_dir / "demo_plugin.py").write_text(
                """
class Plugin:
    def __init__(self, renderer):
        self.plugin_name = "demo"

    def on_attach(self, renderer, event):
        event.state["demo"] = "attached"
"""
            )

            sys.path.insert(0, str(plugin_dir))
            try:
                state: dict[str, str] = {}
                manager = PluginManager(object(), state=state)
                warnings = load_plugins(manager=manager, module_paths=("demo_plugin",), entry_point_group=None)
                self.assertEqual(warnings, ())
                self.assertEqual(manager.plugin_names(), ("demo",))
                self.assertEqual(state["demo"], "attached")

                with self.assertRaises(DuplicatePluginNameError):
                    manager.add_plugin("demo_plugin:Plugin")
            finally:
                sys.path.remove(str(plugin_dir))
                sys.modules.pop("demo_plugin", None)

    def test_load_plugin_reports_warning_for_bad_module(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            plugin_dir = Path(tmp_dir)
            (plugin_dir / "bad_plugin.py").write_text("x = 1\n")

            sys.path.insert(0, str(plugin_dir))
            try:
                manager = PluginManager(object())
                warnings = load_plugins(
                    manager=manager,
                    module_paths=("bad_plugin", "missing_plugin_module"),
                    entry_point_group=None,
                )
                self.assertEqual(len(warnings), 2)
                self.assertIn("failed to load plugin 'bad_plugin'", warnings[0])
                self.assertEqual(len(manager), 0)
            finally:
                sys.path.remove(str(plugin_dir))
                sys.modules.pop("bad_plugin", None)
