"""Error taxonomy for rendering, data loading and plugins."""

from __future__ import annotations


class InkstreamError(Exception):
    """Base class for all library errors."""


class InvalidStateError(InkstreamError):
    """A chunk was written to, tapped or ended after it completed."""


class ImbalancedTapError(InkstreamError):
    """``untap()`` without a matching ``tap()``, or a chunk ended with taps installed."""


class DataError(InkstreamError):
    """Base class for data loading errors."""


class UnsupportedExtensionError(DataError):
    """No handler is registered for a data file's extension."""

    def __init__(self, extension: str, path: str | None = None) -> None:
        self.extension = extension
        self.path = path
        where = f" (file '{path}')" if path else ""
        super().__init__(f"no data handler registered for extension '{extension}'{where}.")


class PluginError(InkstreamError):
    """Base class for plugin errors."""


class InvalidPluginError(PluginError):
    """A plugin object does not satisfy the plugin construction contract."""


class DuplicatePluginNameError(PluginError):
    """A plugin with the same name is already attached."""

    def __init__(self, plugin_name: str) -> None:
        self.plugin_name = plugin_name
        super().__init__(f"plugin '{plugin_name}' is already attached.")


class HelperError(InkstreamError):
    """A helper raised while rendering and no recovery applied."""

    def __init__(self, message: str, *, helper: str) -> None:
        self.helper = helper
        super().__init__(message)


class TemplateRenderError(InkstreamError):
    """Aggregated failure of a render pass.

    ``stage`` names where the failure happened (``parse``, ``data-load``,
    ``plugin-event``, ``helper`` or ``render``); the original exception is
    available as ``__cause__``.
    """

    def __init__(
        self,
        message: str,
        *,
        stage: str,
        template: str | None = None,
        event: str | None = None,
    ) -> None:
        self.stage = stage
        self.template = template
        self.event = event
        parts = [f"stage={stage}"]
        if template:
            parts.append(f"template={template}")
        if event:
            parts.append(f"event={event}")
        super().__init__(f"{message} [{', '.join(parts)}]")
