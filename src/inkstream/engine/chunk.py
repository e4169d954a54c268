"""Chunks: the writable units every template fragment and helper writes into."""

from __future__ import annotations

import inspect
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from inkstream.errors import ImbalancedTapError, InvalidStateError

from .coordinator import RenderTree

if TYPE_CHECKING:
    from .context import Context

Transform = Callable[[str], str]


class TransformStack:
    """LIFO stack of taps.

    ``base`` frames are inherited from the chunk a branch was forked from and
    cannot be popped by the branch's owner.
    """

    def __init__(self, frames: tuple[Transform, ...] = ()) -> None:
        self._frames: list[Transform] = list(frames)
        self._base = len(frames)

    def push(self, transform: Transform) -> None:
        if not callable(transform):
            msg = "tap() expects a callable transform."
            raise TypeError(msg)
        self._frames.append(transform)

    def pop(self) -> Transform:
        if len(self._frames) <= self._base:
            msg = "untap() called without a matching tap()."
            raise ImbalancedTapError(msg)
        return self._frames.pop()

    def apply(self, data: str) -> str:
        # Most recently tapped runs first on the raw data.
        for transform in reversed(self._frames):
            data = transform(data)
        return data

    def inherit(self) -> TransformStack:
        return TransformStack(tuple(self._frames))

    @property
    def depth(self) -> int:
        """Number of frames pushed by this stack's owner."""
        return len(self._frames) - self._base

    def __len__(self) -> int:
        return len(self._frames)


def is_async_body(body: Any) -> bool:
    """Return True when calling ``body`` produces an awaitable."""
    if inspect.iscoroutinefunction(body):
        return True
    call = getattr(type(body), "__call__", None)
    return inspect.iscoroutinefunction(call) or bool(getattr(body, "is_async", False))


class Chunk:
    """Writable cursor into a render tree.

    A chunk handle keeps its identity across ``map()``: after a fork the
    handle writes into the continuation record spliced after the branch, so
    callers keep writing sibling content at their position in the template.
    """

    def __init__(self, tree: RenderTree, index: int, transforms: TransformStack) -> None:
        self._tree = tree
        self._index = index
        self._transforms = transforms
        self._complete = False

    def __repr__(self) -> str:
        state = "complete" if self._complete else "open"
        return f"<Chunk record={self._index} taps={len(self._transforms)} {state}>"

    @property
    def complete(self) -> bool:
        return self._complete

    @property
    def tap_depth(self) -> int:
        return self._transforms.depth

    def _ensure_open(self, operation: str) -> None:
        if self._complete:
            msg = f"cannot {operation}() on a completed chunk."
            raise InvalidStateError(msg)

    def write(self, data: Any) -> Chunk:
        """Append ``data`` after passing it through every installed tap."""
        self._ensure_open("write")
        if data is None:
            return self
        if not isinstance(data, str):
            data = str(data)
        self._tree.append(self._index, self._transforms.apply(data))
        return self

    def tap(self, transform: Transform) -> Chunk:
        self._ensure_open("tap")
        self._transforms.push(transform)
        return self

    def untap(self) -> Chunk:
        self._transforms.pop()
        return self

    def render(self, body: Any, context: Context) -> Chunk:
        """Render ``body`` into this chunk.

        Asynchronous bodies render into a branch spliced at the current
        position; this call returns without waiting for them.
        """
        self._ensure_open("render")
        if body is None:
            return self
        if is_async_body(body):
            return self.map(lambda branch: _render_branch(body, branch, context))
        result = body(self, context)
        return result if isinstance(result, Chunk) else self

    def map(self, branch_fn: Callable[[Chunk], Any]) -> Chunk:
        """Fork an independent branch at the current position.

        ``branch_fn`` receives the branch chunk and owns ending it. If it
        returns an awaitable, the tree schedules it as a task.
        """
        self._ensure_open("map")
        branch_index, continuation_index = self._tree.fork(self._index)
        branch = Chunk(self._tree, branch_index, self._transforms.inherit())
        self._index = continuation_index
        outcome = branch_fn(branch)
        if inspect.isawaitable(outcome):
            self._tree.spawn(outcome)
        return self

    def end(self, data: Any = None) -> Chunk:
        """Optionally write ``data``, then mark the chunk complete."""
        if data is not None:
            self.write(data)
        self._ensure_open("end")
        if self._transforms.depth:
            msg = f"chunk ended with {self._transforms.depth} tap(s) still installed."
            raise ImbalancedTapError(msg)
        self._complete = True
        self._tree.complete(self._index)
        return self


async def _render_branch(body: Any, branch: Chunk, context: Context) -> None:
    await body(branch, context)
    if not branch.complete:
        branch.end()
