"""Plugin lifecycle management and plugin loading."""

from __future__ import annotations

import importlib
import importlib.metadata
import inspect
import logging
from collections.abc import Callable, Iterable, Mapping, MutableMapping, Sequence
from dataclasses import dataclass, field
from types import ModuleType
from typing import Any

from inkstream.config import DEFAULT_PLUGIN_ENTRY_POINT_GROUP, LifecycleEvent
from inkstream.errors import DuplicatePluginNameError, InvalidPluginError, PluginError

logger = logging.getLogger(__name__)

PLUGIN_API_VERSION = 1

# Names probed on a plugin module when no attribute is given explicitly.
_MODULE_PLUGIN_ATTRS = ("Plugin", "plugin", "create_plugin")


@dataclass(frozen=True)
class PluginEvent:
    """What a plugin handler receives besides the renderer."""

    name: LifecycleEvent
    state: MutableMapping[str, Any]
    data: Mapping[str, Any] = field(default_factory=dict)


Handler = Callable[[Any, PluginEvent], Any]


@dataclass
class _PluginRecord:
    name: str
    plugin: Any
    config: dict[str, Any]
    handlers: dict[LifecycleEvent, Handler]


def _handler_table(plugin: Any) -> dict[LifecycleEvent, Handler]:
    """Build the explicit event -> handler table for one plugin."""
    declared = getattr(plugin, "event_handlers", None)
    if callable(declared):
        table: dict[LifecycleEvent, Handler] = {}
        for raw_event, handler in dict(declared()).items():
            try:
                event = LifecycleEvent(raw_event)
            except ValueError as exc:
                msg = f"plugin '{plugin.plugin_name}' declares unknown lifecycle event '{raw_event}'."
                raise InvalidPluginError(msg) from exc
            if not callable(handler):
                msg = f"plugin '{plugin.plugin_name}' handler for '{event.value}' is not callable."
                raise InvalidPluginError(msg)
            table[event] = handler
        return table

    table = {}
    for event in LifecycleEvent:
        handler = getattr(plugin, event.value, None)
        if callable(handler):
            table[event] = handler
    return table


def _accepts_config(factory: Callable[..., Any]) -> bool:
    try:
        signature = inspect.signature(factory)
    except (TypeError, ValueError):
        return False
    positional = [
        param
        for param in signature.parameters.values()
        if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD)
    ]
    has_varargs = any(param.kind is param.VAR_POSITIONAL for param in signature.parameters.values())
    return has_varargs or len(positional) >= 2


def resolve_plugin_factory(target: str) -> Callable[..., Any]:
    """Import ``"module"`` or ``"module:attr"`` and return the plugin factory."""
    module_path, _, attr = target.partition(":")
    try:
        module = importlib.import_module(module_path)
    except ImportError as exc:
        msg = f"could not import plugin module '{module_path}': {exc}"
        raise InvalidPluginError(msg) from exc
    return _factory_from(module, attr or None)


def _factory_from(loaded: Any, attr: str | None = None) -> Callable[..., Any]:
    if isinstance(loaded, ModuleType):
        plugin_version = getattr(loaded, "PLUGIN_API_VERSION", PLUGIN_API_VERSION)
        if plugin_version != PLUGIN_API_VERSION:
            msg = (
                f"module '{loaded.__name__}' targets plugin API version {plugin_version}, "
                f"expected {PLUGIN_API_VERSION}."
            )
            raise InvalidPluginError(msg)
        names = (attr,) if attr else _MODULE_PLUGIN_ATTRS
        for name in names:
            factory = getattr(loaded, name, None)
            if callable(factory):
                return factory
        msg = f"module '{loaded.__name__}' does not define {' or '.join(names)}."
        raise InvalidPluginError(msg)

    if callable(loaded):
        return loaded

    msg = "plugin must resolve to a module, a class or a factory callable."
    raise InvalidPluginError(msg)


class PluginManager:
    """Attaches plugins to one renderer and dispatches lifecycle events.

    Plugins are kept in attach order, which is also dispatch order. The
    ``state`` mapping is owned by the renderer and handed to every handler.
    """

    def __init__(self, renderer: Any, *, state: MutableMapping[str, Any] | None = None) -> None:
        self._renderer = renderer
        self._state: MutableMapping[str, Any] = state if state is not None else {}
        self._plugins: dict[str, _PluginRecord] = {}
        self._global_config: dict[str, Any] = {}

    # -- registration ------------------------------------------------------

    def add_plugin(
        self,
        plugin: Any,
        config: Mapping[str, Any] | None = None,
        global_config: Mapping[str, Any] | None = None,
    ) -> list[Any]:
        """Attach a plugin (or plugins) and return the attached plugin objects.

        ``plugin`` may be a factory/class, an import string, a mapping
        (``{"plugin": ..., **config}`` or ``{import_string: config}``) or a
        sequence of any of these. ``config`` overrides per-plugin settings,
        which override ``global_config``.
        """
        if plugin is None:
            msg = "add_plugin() was called without a plugin."
            raise InvalidPluginError(msg)
        if global_config:
            self.set_global_config(global_config)
        config = dict(config or {})

        if isinstance(plugin, str):
            return [self._attach(resolve_plugin_factory(plugin), config)]
        if isinstance(plugin, Mapping):
            return self._add_mapping(plugin, config)
        if isinstance(plugin, Sequence):
            attached: list[Any] = []
            for item in plugin:
                attached.extend(self.add_plugin(item, config))
            return attached
        if isinstance(plugin, ModuleType) or callable(plugin):
            return [self._attach(_factory_from(plugin), config)]

        msg = f"add_plugin() was called with an invalid plugin type: {type(plugin).__name__}."
        raise InvalidPluginError(msg)

    def _add_mapping(self, mapping: Mapping[str, Any], config: dict[str, Any]) -> list[Any]:
        if "plugin" in mapping:
            inner = {key: value for key, value in mapping.items() if key != "plugin"}
            return self.add_plugin(mapping["plugin"], {**inner, **config})
        attached: list[Any] = []
        for target, plugin_config in mapping.items():
            merged = {**dict(plugin_config or {}), **config}
            attached.extend(self.add_plugin(target, merged))
        return attached

    def _attach(self, factory: Callable[..., Any], config: dict[str, Any]) -> Any:
        resolved = self._resolve_config(config)
        if _accepts_config(factory):
            plugin = factory(self._renderer, resolved)
        else:
            plugin = factory(self._renderer)
        name = self._validate(plugin)
        if name in self._plugins:
            raise DuplicatePluginNameError(name)

        record = _PluginRecord(name=name, plugin=plugin, config=resolved, handlers=_handler_table(plugin))
        logger.debug("Plugin loaded: '%s'", name)
        # A failing attach hook leaves the plugin unregistered.
        self._call_sync(record, LifecycleEvent.ON_ATTACH, {})
        self._plugins[name] = record
        return plugin

    @staticmethod
    def _validate(plugin: Any) -> str:
        name = getattr(plugin, "plugin_name", None)
        if not isinstance(name, str) or not name.strip():
            msg = (
                "add_plugin() was passed an invalid plugin. The object provided does not have a "
                ".plugin_name string (or it was blank), which is required for plugin identification."
            )
            raise InvalidPluginError(msg)
        return name

    def _resolve_config(self, config: Mapping[str, Any]) -> dict[str, Any]:
        resolved = dict(self._global_config)
        resolved.update({key: value for key, value in config.items() if key != "plugin"})
        return resolved

    def set_global_config(self, config: Mapping[str, Any]) -> None:
        self._global_config.update(config)

    def get_global_config(self) -> dict[str, Any]:
        return dict(self._global_config)

    # -- dispatch ----------------------------------------------------------

    def _event(self, event: LifecycleEvent, data: Mapping[str, Any] | None) -> PluginEvent:
        return PluginEvent(name=event, state=self._state, data=dict(data or {}))

    def _call(self, record: _PluginRecord, event: LifecycleEvent, data: Mapping[str, Any] | None) -> Any:
        handler = record.handlers.get(event)
        if handler is None:
            return None
        outcome = handler(self._renderer, self._event(event, data))
        logger.debug("Plugin event '%s' was handled by plugin '%s'", event.value, record.name)
        return outcome

    def _call_sync(self, record: _PluginRecord, event: LifecycleEvent, data: Mapping[str, Any] | None) -> None:
        outcome = self._call(record, event, data)
        if inspect.isawaitable(outcome):
            if inspect.iscoroutine(outcome):
                outcome.close()
            msg = (
                f"plugin '{record.name}' returned an awaitable from '{event.value}', "
                "which is dispatched synchronously."
            )
            raise PluginError(msg)

    def fire_event(self, event: LifecycleEvent | str, data: Mapping[str, Any] | None = None) -> None:
        """Dispatch synchronously, in attach order. Handlers must not be async."""
        event = LifecycleEvent(event)
        for record in tuple(self._plugins.values()):
            self._call_sync(record, event, data)

    async def dispatch(self, event: LifecycleEvent | str, data: Mapping[str, Any] | None = None) -> None:
        """Dispatch in attach order, awaiting each handler before the next."""
        event = LifecycleEvent(event)
        for record in tuple(self._plugins.values()):
            outcome = self._call(record, event, data)
            if inspect.isawaitable(outcome):
                await outcome

    # -- inspection / teardown ----------------------------------------------

    def clear_plugins(self, quiet: bool = False) -> dict[str, Any]:
        """Detach every plugin, firing ``on_detach`` first unless quiet."""
        if not quiet:
            self.fire_event(LifecycleEvent.ON_DETACH)
        removed = {name: record.plugin for name, record in self._plugins.items()}
        self._plugins = {}
        return removed

    def plugin_names(self) -> tuple[str, ...]:
        return tuple(self._plugins)

    def get_plugin(self, name: str) -> Any:
        return self._plugins[name].plugin

    def handles(self, name: str, event: LifecycleEvent | str) -> bool:
        return LifecycleEvent(event) in self._plugins[name].handlers

    def get_plugin_config(self, name: str) -> dict[str, Any] | None:
        record = self._plugins.get(name)
        if record is None:
            return None
        get_config = getattr(record.plugin, "get_config", None)
        if callable(get_config):
            return get_config()
        return dict(record.config)

    def plugin_info(self) -> dict[str, dict[str, Any] | None]:
        return {name: self.get_plugin_config(name) for name in self._plugins}

    def __len__(self) -> int:
        return len(self._plugins)


def _entry_points_for_group(group: str) -> list[importlib.metadata.EntryPoint]:
    return list(importlib.metadata.entry_points().select(group=group))


def _load_one(manager: PluginManager, loader: Callable[[], Any], *, source: str) -> str | None:
    try:
        manager.add_plugin(_factory_from(loader()))
    except (ImportError, AttributeError, InvalidPluginError) as exc:
        return f"warning: failed to load plugin '{source}': {exc}"
    return None


def load_plugins(
    *,
    manager: PluginManager,
    module_paths: Iterable[str] = (),
    entry_point_group: str | None = DEFAULT_PLUGIN_ENTRY_POINT_GROUP,
) -> tuple[str, ...]:
    """Load plugin modules and entry points, collecting warning strings.

    Duplicate names and failing attach hooks still raise.
    """
    warnings: list[str] = []

    for module_path in module_paths:
        name, _, attr = module_path.partition(":")
        warning = _load_one(
            manager,
            lambda name=name, attr=attr: (
                getattr(importlib.import_module(name), attr) if attr else importlib.import_module(name)
            ),
            source=module_path,
        )
        if warning:
            warnings.append(warning)

    if entry_point_group:
        for entry_point in _entry_points_for_group(entry_point_group):
            warning = _load_one(
                manager,
                entry_point.load,
                source=f"{entry_point.name} ({entry_point.value})",
            )
            if warning:
                warnings.append(warning)

    for warning in warnings:
        logger.warning(warning)
    return tuple(warnings)
