"""Per-render environment shared by every context of a render pass."""

from __future__ import annotations

from dataclasses import dataclass, field

from inkstream.config import DEFAULT_ERROR_PLACEHOLDER

from .registry import HelperRegistry, TemplateRegistry


@dataclass(frozen=True)
class RenderEnvironment:
    """Registries and policies that bodies consult while rendering."""

    helpers: HelperRegistry = field(default_factory=HelperRegistry)
    templates: TemplateRegistry = field(default_factory=TemplateRegistry)
    escape_html: bool = True
    on_helper_error: str = "abort"
    error_placeholder: str = DEFAULT_ERROR_PLACEHOLDER
