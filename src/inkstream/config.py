"""Configuration constants and renderer options."""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import Any

# Reserved key in a data handler's return value naming an explicit storage key.
STORE_AS_KEY = "$storeAs"

# Context data namespaces
DATA_NAMESPACE = "data"
PAGE_NAMESPACE = "page"

DEFAULT_PLUGIN_ENTRY_POINT_GROUP = "inkstream.plugins"
DEFAULT_ERROR_PLACEHOLDER = "[error: {helper}]"

BOOL_TRUE = {"1", "true", "yes", "on"}
BOOL_FALSE = {"0", "false", "no", "off"}

HELPER_ERROR_POLICIES = ("abort", "placeholder")
PLUGIN_ERROR_POLICIES = ("abort", "continue")


class LifecycleEvent(str, enum.Enum):
    """Named stages of a render pass, in firing order.

    The value doubles as the plugin method name handling the event.
    """

    ON_ATTACH = "on_attach"
    BEFORE_RENDER = "before_render"
    BEFORE_LOAD_DATA = "before_load_data"
    ON_DATA_FILE_LOADED = "on_data_file_loaded"
    AFTER_LOAD_DATA = "after_load_data"
    BEFORE_LOAD_HELPERS = "before_load_helpers"
    AFTER_LOAD_HELPERS = "after_load_helpers"
    BEFORE_RENDER_CONTENT = "before_render_content"
    AFTER_RENDER_CONTENT = "after_render_content"
    AFTER_RENDER = "after_render"
    ON_DETACH = "on_detach"


@dataclass(frozen=True)
class RendererOptions:
    """Renderer-level settings and error policies."""

    data_paths: tuple[str, ...] = ()
    helper_modules: tuple[str, ...] = ()
    plugin_modules: tuple[str, ...] = ()
    on_helper_error: str = "abort"
    on_plugin_error: str = "abort"
    escape_html: bool = True
    error_placeholder: str = DEFAULT_ERROR_PLACEHOLDER

    def __post_init__(self) -> None:
        if self.on_helper_error not in HELPER_ERROR_POLICIES:
            msg = (
                f"invalid on_helper_error '{self.on_helper_error}'. "
                f"Valid values: {', '.join(HELPER_ERROR_POLICIES)}."
            )
            raise ValueError(msg)
        if self.on_plugin_error not in PLUGIN_ERROR_POLICIES:
            msg = (
                f"invalid on_plugin_error '{self.on_plugin_error}'. "
                f"Valid values: {', '.join(PLUGIN_ERROR_POLICIES)}."
            )
            raise ValueError(msg)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> RendererOptions:
        """Build options from loosely typed values, e.g. CLI ``key=value`` pairs."""
        known = {field.name: field for field in fields(cls)}
        values: dict[str, Any] = {}
        for key, raw_value in (raw or {}).items():
            if key not in known:
                msg = f"unknown renderer option '{key}'. Valid options: {', '.join(known)}."
                raise ValueError(msg)
            default = known[key].default
            if isinstance(default, tuple):
                if isinstance(raw_value, str):
                    raw_value = tuple(part.strip() for part in raw_value.split(",") if part.strip())
                values[key] = tuple(raw_value)
            elif isinstance(default, bool):
                values[key] = _coerce_bool(key, raw_value)
            else:
                values[key] = str(raw_value)
        return cls(**values)


def _coerce_bool(key: str, raw_value: Any) -> bool:
    if isinstance(raw_value, bool):
        return raw_value
    normalized = str(raw_value).strip().lower()
    if normalized in BOOL_TRUE:
        return True
    if normalized in BOOL_FALSE:
        return False
    msg = f"invalid value '{raw_value}' for renderer option '{key}'. Expected a boolean (true/false)."
    raise ValueError(msg)
