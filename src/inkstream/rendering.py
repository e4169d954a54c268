"""The renderer: staged render passes with plugin lifecycle events."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from .config import LifecycleEvent, RendererOptions
from .data import DataFile, DataManager
from .engine import (
    Body,
    Context,
    HelperRegistry,
    HelperSpec,
    PluginManager,
    RenderEnvironment,
    RenderTree,
    Sink,
    TemplateRegistry,
    load_plugins,
)
from .errors import HelperError, TemplateRenderError
from .helpers import load_helper_modules, register_builtin_helpers

logger = logging.getLogger(__name__)


class Renderer:
    """Owns the registries, data and plugins for one render pass at a time.

    A pass runs these stages, firing the matching lifecycle events:
    data loading, helper loading, content rendering.
    """

    def __init__(
        self,
        options: RendererOptions | None = None,
        *,
        plugins: Sequence[Any] = (),
        entry_point_group: str | None = None,
    ) -> None:
        self.options = options or RendererOptions()
        # Shared plugin state; handed to every plugin event.
        self.state: dict[str, Any] = {}
        self.errors: list[TemplateRenderError] = []
        self.helpers = HelperRegistry()
        register_builtin_helpers(self.helpers)
        self.templates = TemplateRegistry()
        self.data = DataManager(on_file_loaded=self._data_file_loaded)
        self.plugins = PluginManager(self, state=self.state)
        self._loaded_helper_modules: set[str] = set()

        self.warnings = load_plugins(
            manager=self.plugins,
            module_paths=self.options.plugin_modules,
            entry_point_group=entry_point_group,
        )
        for plugin in plugins:
            self.plugins.add_plugin(plugin)

    def __enter__(self) -> Renderer:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -- setup -------------------------------------------------------------

    def use(self, plugin: Any, config: Mapping[str, Any] | None = None) -> Any:
        """Attach plugin(s); a single plugin is returned unwrapped."""
        attached = self.plugins.add_plugin(plugin, config)
        return attached[0] if len(attached) == 1 else attached

    def add_extension_handler(self, extension: str, handler: Callable[[DataFile], Any]) -> None:
        self.data.add_extension_handler(extension, handler)

    def add_helper(self, helper: HelperSpec | str, fn: Callable[..., Any] | None = None) -> None:
        if isinstance(helper, HelperSpec):
            self.helpers.register(helper, replace=True)
            return
        if fn is None:
            msg = f"add_helper('{helper}') needs a helper function."
            raise ValueError(msg)
        self.helpers.add(helper, fn)

    def add_template(self, name: str, body: Body, front_matter: str | None = None) -> None:
        """Register a named template.

        ``front_matter`` is a YAML block between ``---`` fences; its values are
        stored as the template's page data and lifted into its render context.
        """
        self.templates.register(name, body)
        if front_matter is not None:
            self.data.parse_front_matter(front_matter, name)

    def environment(self) -> RenderEnvironment:
        return RenderEnvironment(
            helpers=self.helpers,
            templates=self.templates,
            escape_html=self.options.escape_html,
            on_helper_error=self.options.on_helper_error,
            error_placeholder=self.options.error_placeholder,
        )

    def reset_state(self) -> None:
        self.state.clear()

    def close(self) -> None:
        """Detach all plugins and tear down plugin state."""
        self.plugins.clear_plugins()
        self.state.clear()

    # -- events ------------------------------------------------------------

    def _plugin_failure(self, exc: Exception, event: LifecycleEvent, template: str | None) -> None:
        error = TemplateRenderError(
            f"plugin event '{event.value}' failed: {exc}",
            stage="plugin-event",
            template=template,
            event=event.value,
        )
        error.__cause__ = exc
        if self.options.on_plugin_error == "continue":
            logger.warning("Continuing after plugin failure: %s", error)
            self.errors.append(error)
            return
        raise error

    async def _fire(self, event: LifecycleEvent, template_name: str | None, **data: Any) -> None:
        try:
            await self.plugins.dispatch(event, data)
        except Exception as exc:
            self._plugin_failure(exc, event, template_name)

    def _data_file_loaded(self, file: DataFile, key: str, value: Any) -> None:
        event = LifecycleEvent.ON_DATA_FILE_LOADED
        try:
            self.plugins.fire_event(event, {"file": file, "key": key, "data": value, "data_manager": self.data})
        except Exception as exc:
            self._plugin_failure(exc, event, None)

    # -- stages ------------------------------------------------------------

    def _resolve_template(self, template: str | Body) -> tuple[str, Body]:
        if isinstance(template, str):
            try:
                return template, self.templates.get(template)
            except ValueError as exc:
                raise TemplateRenderError(str(exc), stage="parse", template=template) from exc
        if not callable(template):
            msg = f"cannot render {type(template).__name__}; expected a template name or body."
            raise TemplateRenderError(msg, stage="parse")
        return getattr(template, "__name__", "<inline>"), template

    async def _load_data(self, template: str) -> None:
        await self._fire(LifecycleEvent.BEFORE_LOAD_DATA, template)
        try:
            if self.options.data_paths:
                self.data.load_paths(self.options.data_paths)
        except TemplateRenderError:
            raise
        except Exception as exc:
            raise TemplateRenderError(f"data loading failed: {exc}", stage="data-load", template=template) from exc
        await self._fire(LifecycleEvent.AFTER_LOAD_DATA, template, data=self.data.context_data)

    async def _load_helpers(self, template: str) -> None:
        await self._fire(LifecycleEvent.BEFORE_LOAD_HELPERS, template)
        pending = [path for path in self.options.helper_modules if path not in self._loaded_helper_modules]
        try:
            self._loaded_helper_modules.update(load_helper_modules(self.helpers, pending))
        except Exception as exc:
            raise TemplateRenderError(f"helper loading failed: {exc}", stage="helper", template=template) from exc
        await self._fire(LifecycleEvent.AFTER_LOAD_HELPERS, template, helpers=self.helpers.helper_ids())

    async def _render_content(
        self,
        name: str,
        body: Body,
        context: Mapping[str, Any] | Context | None,
        sink: Sink | None,
    ) -> str:
        if isinstance(context, Context):
            ctx = context
        else:
            ctx = Context(
                globals=self.data.context_for_template(name),
                env=self.environment(),
                template_name=name,
            )
            if context is not None:
                ctx = ctx.push(context)

        tree = RenderTree(sink, name=name)
        try:
            root = tree.root()
            root.render(body, ctx)
            root.end()
            return await tree.wait()
        except Exception as exc:
            await tree.drain()
            if isinstance(exc, HelperError):
                raise TemplateRenderError(str(exc), stage="helper", template=name) from exc
            raise TemplateRenderError(f"render failed: {exc}", stage="render", template=name) from exc

    async def render(
        self,
        template: str | Body,
        context: Mapping[str, Any] | Context | None = None,
        *,
        sink: Sink | None = None,
    ) -> str:
        """Run a full render pass and return the output.

        ``sink`` receives output fragments in document order as soon as they
        can be flushed.
        """
        self.errors = []
        name, body = self._resolve_template(template)
        logger.debug("Rendering template '%s'", name)
        await self._fire(LifecycleEvent.BEFORE_RENDER, name, template=name)
        await self._load_data(name)
        await self._load_helpers(name)
        await self._fire(LifecycleEvent.BEFORE_RENDER_CONTENT, name, template=name)
        output = await self._render_content(name, body, context, sink)
        await self._fire(LifecycleEvent.AFTER_RENDER_CONTENT, name, template=name, output=output)
        await self._fire(LifecycleEvent.AFTER_RENDER, name, template=name)
        return output

    def render_sync(
        self,
        template: str | Body,
        context: Mapping[str, Any] | Context | None = None,
        *,
        sink: Sink | None = None,
    ) -> str:
        return asyncio.run(self.render(template, context, sink=sink))
