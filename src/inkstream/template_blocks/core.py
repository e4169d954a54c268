"""Composable body primitives.

These play the role of compiled template code: each is a callable taking
``(chunk, context)`` that writes into the chunk and returns the chunk to
continue with.
"""

from __future__ import annotations

import html
import inspect
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from inkstream.engine import Body, Chunk, Context, Markup, is_async_body, resolve_helper_params
from inkstream.engine.contracts import HelperSpec
from inkstream.errors import HelperError, ImbalancedTapError, InvalidStateError

logger = logging.getLogger(__name__)

# Contract violations are never recovered from.
_STRUCTURAL_ERRORS = (InvalidStateError, ImbalancedTapError)


def _discard(awaitable: Any) -> None:
    if inspect.iscoroutine(awaitable):
        awaitable.close()


def _should_escape(context: Context, escape: bool | None) -> bool:
    if escape is not None:
        return escape
    return context.env.escape_html if context.env is not None else True


@dataclass(frozen=True)
class Text:
    """Literal template text."""

    text: str

    def __call__(self, chunk: Chunk, context: Context) -> Chunk:
        return chunk.write(self.text)


@dataclass(frozen=True)
class Reference:
    """Write a context value, HTML-escaped unless it is ``Markup``."""

    path: str
    escape: bool | None = None

    def __call__(self, chunk: Chunk, context: Context) -> Chunk:
        value = context.get(self.path)
        if value is None:
            return chunk
        text = value if isinstance(value, str) else str(value)
        if _should_escape(context, self.escape) and not isinstance(value, Markup):
            text = html.escape(text)
        return chunk.write(text)


@dataclass(frozen=True)
class Composite:
    """Render multiple bodies in order."""

    bodies: Sequence[Body]

    def __call__(self, chunk: Chunk, context: Context) -> Chunk:
        for body in self.bodies:
            chunk = chunk.render(body, context)
        return chunk


@dataclass(frozen=True)
class Callback:
    """Wrap a plain function as a body."""

    callback: Callable[[Chunk, Context], Any]

    def __call__(self, chunk: Chunk, context: Context) -> Chunk:
        result = self.callback(chunk, context)
        return result if isinstance(result, Chunk) else chunk


@dataclass(frozen=True)
class Section:
    """Render ``block`` once per list item (or once for a truthy value)."""

    path: str
    block: Body
    else_body: Body | None = None

    def __call__(self, chunk: Chunk, context: Context) -> Chunk:
        value = context.get(self.path)
        if isinstance(value, (list, tuple)):
            if not value:
                return chunk.render(self.else_body, context)
            for index, item in enumerate(value):
                chunk = chunk.render(self.block, context.push(item, index=index, length=len(value)))
            return chunk
        if not value:
            return chunk.render(self.else_body, context)
        if isinstance(value, Mapping):
            return chunk.render(self.block, context.push(value))
        return chunk.render(self.block, context)


@dataclass(frozen=True)
class Partial:
    """Render a registered template, optionally with extra scoped values."""

    name: str
    params: Mapping[str, Any] = field(default_factory=dict)

    def __call__(self, chunk: Chunk, context: Context) -> Chunk:
        if context.env is None:
            msg = f"cannot render partial '{self.name}' without a render environment."
            raise ValueError(msg)
        body = context.env.templates.get(self.name)
        scoped = context.push(dict(self.params)) if self.params else context
        return chunk.render(body, scoped.for_template(self.name))


@dataclass(frozen=True)
class HelperCall:
    """Invoke a registered helper with its bodies and params."""

    name: str
    bodies: Mapping[str, Body] = field(default_factory=dict)
    params: Mapping[str, Any] = field(default_factory=dict)

    def __call__(self, chunk: Chunk, context: Context) -> Chunk:
        if context.env is None:
            msg = f"cannot call helper '{self.name}' without a render environment."
            raise ValueError(msg)
        spec = context.env.helpers.get(self.name)
        if is_async_body(spec.fn):
            return chunk.map(lambda branch: self._run_async(spec, branch, context))

        depth = chunk.tap_depth
        try:
            params = resolve_helper_params(spec=spec, raw_params=self.params, context=context)
            result = spec.fn(chunk, context, self.bodies, params)
            if inspect.isawaitable(result):
                _discard(result)
                msg = "returned an awaitable from a synchronous call; declare it async or write through chunk.map()."
                raise TypeError(msg)
        except _STRUCTURAL_ERRORS:
            raise
        except Exception as exc:
            return self._recover(chunk, context, exc, depth)
        return self._continue(chunk, context, result)

    async def _run_async(self, spec: HelperSpec, branch: Chunk, context: Context) -> None:
        depth = branch.tap_depth
        try:
            params = resolve_helper_params(spec=spec, raw_params=self.params, context=context)
            result = await spec.fn(branch, context, self.bodies, params)
            self._continue(branch, context, result)
        except _STRUCTURAL_ERRORS:
            raise
        except Exception as exc:
            self._recover(branch, context, exc, depth)
        if not branch.complete:
            branch.end()

    def _continue(self, chunk: Chunk, context: Context, result: Any) -> Chunk:
        if isinstance(result, Chunk):
            return result
        if result is None:
            return chunk
        if self.bodies:
            body = self.bodies.get("block") if result else self.bodies.get("else")
            return chunk.render(body, context)
        if isinstance(result, bool):
            return chunk
        return chunk.write(result)

    def _recover(self, chunk: Chunk, context: Context, exc: Exception, depth: int) -> Chunk:
        if isinstance(exc, HelperError):
            raise exc
        env = context.env
        error_body = self.bodies.get("error")
        if error_body is None and env.on_helper_error != "placeholder":
            msg = f"helper '{self.name}' failed: {exc}"
            raise HelperError(msg, helper=self.name) from exc

        logger.warning("Helper '%s' failed, rendering recovery output: %s", self.name, exc)
        while chunk.tap_depth > depth:
            chunk.untap()
        if error_body is not None:
            return chunk.render(error_body, context.push({"error": str(exc)}))
        return chunk.write(env.error_placeholder.format(helper=self.name, error=exc))
