"""Built-in helpers and helper module loading."""

from __future__ import annotations

import asyncio
import importlib
from collections.abc import Iterable, Mapping
from typing import Any

from .engine import Bodies, Chunk, Context, HelperParamSpec, HelperRegistry, HelperSpec


def upper(chunk: Chunk, context: Context, bodies: Bodies, params: Mapping[str, Any]) -> Chunk:
    return chunk.tap(str.upper).render(bodies.get("block"), context).untap()


def lower(chunk: Chunk, context: Context, bodies: Bodies, params: Mapping[str, Any]) -> Chunk:
    return chunk.tap(str.lower).render(bodies.get("block"), context).untap()


def eq(chunk: Chunk, context: Context, bodies: Bodies, params: Mapping[str, Any]) -> bool:
    return params.get("key") == params.get("value")


def sep(chunk: Chunk, context: Context, bodies: Bodies, params: Mapping[str, Any]) -> Chunk:
    """Render the block unless the current section item is the last one."""
    if context.length is not None and context.index == context.length - 1:
        return chunk
    return chunk.render(bodies.get("block"), context)


async def defer(chunk: Chunk, context: Context, bodies: Bodies, params: Mapping[str, Any]) -> Chunk:
    """Render the block after ``delay`` seconds, in its original position."""
    await asyncio.sleep(params["delay"])
    return chunk.render(bodies.get("block"), context)


BUILTIN_HELPERS = (
    HelperSpec(
        helper_id="upper",
        description="Upper-case everything written by the block.",
        fn=upper,
        aliases=("yell",),
    ),
    HelperSpec(helper_id="lower", description="Lower-case everything written by the block.", fn=lower),
    HelperSpec(helper_id="eq", description="Select block when key equals value, else the else body.", fn=eq),
    HelperSpec(helper_id="sep", description="Render the block between section items.", fn=sep),
    HelperSpec(
        helper_id="defer",
        description="Render the block asynchronously after a delay.",
        fn=defer,
        params=(
            HelperParamSpec(
                key="delay",
                value_type=float,
                description="Seconds to wait.",
                default=0.0,
                min_value=0.0,
            ),
        ),
    ),
)


def register_builtin_helpers(registry: HelperRegistry) -> None:
    registry.register_many(BUILTIN_HELPERS)


def load_helper_modules(registry: HelperRegistry, module_paths: Iterable[str]) -> tuple[str, ...]:
    """Import helper modules and let each register its helpers.

    A module either defines ``register_helpers(registry)`` or a ``HELPERS``
    mapping of helper id to function.
    """
    loaded: list[str] = []
    for module_path in module_paths:
        module = importlib.import_module(module_path)
        register_fn = getattr(module, "register_helpers", None)
        helpers = getattr(module, "HELPERS", None)
        if callable(register_fn):
            register_fn(registry)
        elif isinstance(helpers, Mapping):
            for helper_id, fn in helpers.items():
                registry.add(helper_id, fn)
        else:
            msg = f"module '{module_path}' defines neither register_helpers(registry) nor HELPERS."
            raise ValueError(msg)
        loaded.append(module_path)
    return tuple(loaded)
