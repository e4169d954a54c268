"""Reusable bodies for template composition."""

from .core import Callback, Composite, HelperCall, Partial, Reference, Section, Text

__all__ = [
    "Callback",
    "Composite",
    "HelperCall",
    "Partial",
    "Reference",
    "Section",
    "Text",
]
