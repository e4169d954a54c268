"""Core contracts for bodies, helpers and helper registration."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Protocol

if TYPE_CHECKING:
    from .chunk import Chunk
    from .context import Context

MISSING = object()


class Markup(str):
    """Text that is already safe markup and must not be escaped."""

    __slots__ = ()


@dataclass(frozen=True)
class Ref:
    """Helper parameter resolved from the context at call time."""

    path: str

    def resolve(self, context: Context) -> Any:
        return context.get(self.path)


class Body(Protocol):
    """Renderable template fragment (compiled template code)."""

    def __call__(self, chunk: Chunk, context: Context) -> Chunk | None:
        """Write output into the chunk."""


Bodies = Mapping[str, Body]


class Helper(Protocol):
    """User-supplied helper invoked for a dynamic fragment."""

    def __call__(
        self,
        chunk: Chunk,
        context: Context,
        bodies: Bodies,
        params: Mapping[str, Any],
    ) -> Any:
        """Write into the chunk and return it, or return a plain value."""


@dataclass(frozen=True)
class HelperParamSpec:
    """Validation rules for one helper parameter."""

    key: str
    value_type: type
    description: str
    required: bool = False
    default: Any = MISSING
    choices: tuple[Any, ...] = ()
    min_value: float | None = None
    max_value: float | None = None
    aliases: tuple[str, ...] = ()

    def all_keys(self) -> tuple[str, ...]:
        return (self.key, *self.aliases)

    @property
    def has_default(self) -> bool:
        return self.default is not MISSING


@dataclass(frozen=True)
class HelperSpec:
    """Registry metadata and callable for a helper."""

    helper_id: str
    description: str
    fn: Callable[..., Any]
    params: tuple[HelperParamSpec, ...] = ()
    aliases: tuple[str, ...] = ()
    # Unknown params are passed through unchecked unless strict.
    strict_params: bool = False
