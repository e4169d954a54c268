"""Streamed template rendering with plugins and pluggable data files."""

from .config import LifecycleEvent, RendererOptions
from .data import DataExtensionRegistry, DataFile, DataManager
from .engine import Chunk, Context, HelperParamSpec, HelperSpec, Markup, PluginEvent, Ref, RenderTree
from .errors import (
    DuplicatePluginNameError,
    ImbalancedTapError,
    InkstreamError,
    InvalidStateError,
    TemplateRenderError,
    UnsupportedExtensionError,
)
from .rendering import Renderer

__all__ = [
    "Chunk",
    "Context",
    "DataExtensionRegistry",
    "DataFile",
    "DataManager",
    "DuplicatePluginNameError",
    "HelperParamSpec",
    "HelperSpec",
    "ImbalancedTapError",
    "InkstreamError",
    "InvalidStateError",
    "LifecycleEvent",
    "Markup",
    "PluginEvent",
    "Ref",
    "RenderTree",
    "Renderer",
    "RendererOptions",
    "TemplateRenderError",
    "UnsupportedExtensionError",
]
