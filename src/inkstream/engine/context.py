"""Layered render context."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .environment import RenderEnvironment

_MISSING = object()


def _lookup(value: Any, key: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(key, _MISSING)
    if isinstance(value, (list, tuple)) and key.isdigit():
        position = int(key)
        return value[position] if position < len(value) else _MISSING
    return getattr(value, key, _MISSING)


class Context:
    """Immutable stack of context frames.

    ``push()`` returns a new context layered over this one; frames below it
    are shared but never mutated, so sibling renders cannot see each other's
    pushed values.
    """

    __slots__ = ("_frames", "_globals", "_loop", "env", "template_name")

    def __init__(
        self,
        data: Any = None,
        *,
        globals: Mapping[str, Any] | None = None,  # noqa: A002 - mirrors template terminology
        env: RenderEnvironment | None = None,
        template_name: str | None = None,
    ) -> None:
        self._frames: tuple[Any, ...] = () if data is None else (data,)
        self._globals: Mapping[str, Any] = dict(globals or {})
        self._loop: tuple[int, int] | None = None
        self.env = env
        self.template_name = template_name

    def _derive(
        self,
        frames: tuple[Any, ...],
        *,
        template_name: str | None = None,
        loop: tuple[int, int] | None = None,
    ) -> Context:
        derived = Context.__new__(Context)
        derived._frames = frames
        derived._globals = self._globals
        derived._loop = loop if loop is not None else self._loop
        derived.env = self.env
        derived.template_name = template_name or self.template_name
        return derived

    def push(self, value: Any, *, index: int | None = None, length: int | None = None) -> Context:
        """Layer ``value`` on top; ``index``/``length`` record a list iteration position."""
        loop = (index, length) if index is not None and length is not None else None
        return self._derive(self._frames + (value,), loop=loop)

    def pop(self) -> Context:
        if not self._frames:
            msg = "cannot pop an empty context."
            raise ValueError(msg)
        return self._derive(self._frames[:-1])

    def for_template(self, template_name: str) -> Context:
        return self._derive(self._frames, template_name=template_name)

    def current(self) -> Any:
        """Return the most recently pushed frame, or None."""
        return self._frames[-1] if self._frames else None

    def get(self, name: str, default: Any = None) -> Any:
        """Resolve a (dotted) name.

        ``"."`` is the current frame. The first path segment is searched from
        the newest frame down to the globals; later segments drill into the
        value found.
        """
        if name == ".":
            return self.current()
        head, *rest = name.split(".")
        value = _MISSING
        for frame in reversed(self._frames):
            value = _lookup(frame, head) if isinstance(frame, Mapping) else _MISSING
            if value is not _MISSING:
                break
        if value is _MISSING:
            value = self._globals.get(head, _MISSING)
        for key in rest:
            if value is _MISSING or value is None:
                return default
            value = _lookup(value, key)
        return default if value is _MISSING else value

    @property
    def index(self) -> int | None:
        """Position of the current item in the innermost iterated list."""
        return self._loop[0] if self._loop else None

    @property
    def length(self) -> int | None:
        return self._loop[1] if self._loop else None

    @property
    def depth(self) -> int:
        return len(self._frames)
