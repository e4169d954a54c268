"""Streaming render engine package."""

from .chunk import Chunk, Transform, TransformStack, is_async_body
from .context import Context
from .contracts import Bodies, Body, Helper, HelperParamSpec, HelperSpec, Markup, Ref
from .coordinator import RenderTree, Sink
from .environment import RenderEnvironment
from .params import parse_param_pairs, resolve_helper_params
from .plugins import PLUGIN_API_VERSION, PluginEvent, PluginManager, load_plugins
from .registry import HelperRegistry, TemplateRegistry

__all__ = [
    "PLUGIN_API_VERSION",
    "Bodies",
    "Body",
    "Chunk",
    "Context",
    "Helper",
    "HelperParamSpec",
    "HelperRegistry",
    "HelperSpec",
    "Markup",
    "PluginEvent",
    "PluginManager",
    "Ref",
    "RenderEnvironment",
    "RenderTree",
    "Sink",
    "TemplateRegistry",
    "Transform",
    "TransformStack",
    "is_async_body",
    "load_plugins",
    "parse_param_pairs",
    "resolve_helper_params",
]
