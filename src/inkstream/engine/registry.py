"""Helper and template registries."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from .contracts import Body, HelperSpec


@dataclass
class HelperRegistry:
    """In-memory registry of helper specs."""

    _specs: dict[str, HelperSpec] = field(default_factory=dict)
    _aliases: dict[str, str] = field(default_factory=dict)

    def register(self, spec: HelperSpec, *, replace: bool = False) -> None:
        helper_id = spec.helper_id.strip()
        if not helper_id:
            msg = "helper_id cannot be empty."
            raise ValueError(msg)
        if helper_id in self._specs and not replace:
            msg = f"helper '{helper_id}' is already registered."
            raise ValueError(msg)
        if helper_id in self._aliases:
            msg = f"helper id '{helper_id}' conflicts with an existing alias."
            raise ValueError(msg)

        alias_keys: list[str] = []
        for alias in spec.aliases:
            alias_key = alias.strip()
            if not alias_key:
                msg = "helper alias cannot be empty."
                raise ValueError(msg)
            if alias_key == helper_id:
                msg = f"alias '{alias_key}' duplicates helper id '{helper_id}'."
                raise ValueError(msg)
            owner = self._aliases.get(alias_key)
            if alias_key in self._specs or (owner is not None and owner != helper_id):
                msg = f"helper alias '{alias_key}' is already registered."
                raise ValueError(msg)
            alias_keys.append(alias_key)

        if replace and helper_id in self._specs:
            self._aliases = {k: v for k, v in self._aliases.items() if v != helper_id}
        self._specs[helper_id] = spec
        for alias_key in alias_keys:
            self._aliases[alias_key] = helper_id

    def register_many(self, specs: Iterable[HelperSpec]) -> None:
        for spec in specs:
            self.register(spec)

    def add(self, helper_id: str, fn: Callable[..., Any], description: str = "") -> None:
        """Register a bare helper function, replacing any previous one."""
        self.register(HelperSpec(helper_id=helper_id, description=description, fn=fn), replace=True)

    def resolve_id(self, helper: str) -> str:
        if helper in self._specs:
            return helper
        if helper in self._aliases:
            return self._aliases[helper]
        valid = ", ".join(sorted(self.helper_ids()))
        msg = f"unknown helper '{helper}'. Valid helpers: {valid}."
        raise ValueError(msg)

    def get(self, helper: str) -> HelperSpec:
        return self._specs[self.resolve_id(helper)]

    def __contains__(self, helper: object) -> bool:
        return helper in self._specs or helper in self._aliases

    def list_specs(self) -> tuple[HelperSpec, ...]:
        return tuple(self._specs.values())

    def helper_ids(self) -> tuple[str, ...]:
        return tuple(self._specs)


@dataclass
class TemplateRegistry:
    """Named templates, used for top-level renders and partials."""

    _templates: dict[str, Body] = field(default_factory=dict)

    def register(self, name: str, body: Body) -> None:
        key = name.strip()
        if not key:
            msg = "template name cannot be empty."
            raise ValueError(msg)
        # Last registration wins, like reloading a changed template file.
        self._templates[key] = body

    def get(self, name: str) -> Body:
        try:
            return self._templates[name]
        except KeyError:
            valid = ", ".join(sorted(self._templates)) or "(none)"
            msg = f"unknown template '{name}'. Registered templates: {valid}."
            raise ValueError(msg) from None

    def __contains__(self, name: object) -> bool:
        return name in self._templates

    def names(self) -> tuple[str, ...]:
        return tuple(self._templates)
