"""Data files: the extension handler registry and context data storage.

Handlers turn one data file into a value stored under the file's base name in
the ``data`` namespace. A handler may instead return a mapping carrying the
reserved ``$storeAs`` key; the remaining keys are then stored under that name.
Conflicting keys are resolved last-in: later files replace earlier values.
"""

from __future__ import annotations

import configparser
import json
import logging
import re
import tomllib
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .config import DATA_NAMESPACE, PAGE_NAMESPACE, STORE_AS_KEY
from .errors import DataError, UnsupportedExtensionError

logger = logging.getLogger(__name__)

_FRONT_MATTER = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)


def normalize_extension(extension: str) -> str:
    normalized = extension.strip().lstrip(".").lower()
    if not normalized:
        msg = f"invalid data file extension '{extension}'."
        raise ValueError(msg)
    return normalized


@dataclass(frozen=True)
class DataFile:
    """Handle passed to extension handlers."""

    path: Path

    @property
    def name(self) -> str:
        return self.path.stem

    @property
    def extension(self) -> str:
        return self.path.suffix.lstrip(".").lower()

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()

    def read_text(self, encoding: str = "utf-8") -> str:
        return self.path.read_text(encoding=encoding)

    def read_sync(self) -> str:
        """Read the whole file as text."""
        return self.read_text()


DataHandler = Callable[[DataFile], Any]


def load_json(file: DataFile) -> Any:
    return json.loads(file.read_text())


def load_yaml(file: DataFile) -> Any:
    loaded = yaml.safe_load(file.read_text())
    return {} if loaded is None else loaded


def load_toml(file: DataFile) -> Any:
    return tomllib.loads(file.read_text())


def load_ini(file: DataFile) -> Any:
    parser = configparser.ConfigParser()
    parser.read_string(file.read_text(), source=str(file.path))
    loaded: dict[str, Any] = dict(parser.defaults())
    for section in parser.sections():
        loaded[section] = {key: value for key, value in parser.items(section, raw=True)}
    return loaded


BUILTIN_HANDLERS: dict[str, DataHandler] = {
    "json": load_json,
    "yaml": load_yaml,
    "yml": load_yaml,
    "toml": load_toml,
    "ini": load_ini,
}


class DataExtensionRegistry:
    """Maps file extensions to handlers; the last registration wins."""

    def __init__(self, handlers: Mapping[str, DataHandler] | None = None) -> None:
        self._handlers: dict[str, DataHandler] = {}
        for extension, handler in (handlers or {}).items():
            self.add_extension_handler(extension, handler)

    def add_extension_handler(self, extension: str, handler: DataHandler) -> None:
        if not callable(handler):
            msg = f"handler for extension '{extension}' is not callable."
            raise TypeError(msg)
        key = normalize_extension(extension)
        if key in self._handlers:
            logger.debug("Overriding data handler for '.%s'", key)
        self._handlers[key] = handler

    def resolve(self, extension: str, *, path: str | None = None) -> DataHandler:
        key = extension.strip().lstrip(".").lower()
        try:
            return self._handlers[key]
        except KeyError:
            raise UnsupportedExtensionError(key, path) from None

    def has_handler(self, extension: str) -> bool:
        return extension.strip().lstrip(".").lower() in self._handlers

    def extensions(self) -> tuple[str, ...]:
        return tuple(sorted(self._handlers))


def split_store_as(value: Any, default_key: str) -> tuple[str, Any]:
    """Return ``(storage_key, stored_value)`` for a handler's return value."""
    if not isinstance(value, Mapping) or STORE_AS_KEY not in value:
        return default_key, value
    key = value[STORE_AS_KEY]
    if not isinstance(key, str) or not key.strip():
        msg = f"'{STORE_AS_KEY}' must be a non-empty string, got {key!r}."
        raise DataError(msg)
    return key.strip(), {k: v for k, v in value.items() if k != STORE_AS_KEY}


def _data_path(name: str) -> list[str]:
    return [part for part in re.split(r"[\\/.]+", name) if part]


FileLoadedCallback = Callable[[DataFile, str, Any], None]


class DataManager:
    """Loads data files through the registry and owns the context data."""

    def __init__(
        self,
        registry: DataExtensionRegistry | None = None,
        *,
        builtin_handlers: bool = True,
        on_file_loaded: FileLoadedCallback | None = None,
    ) -> None:
        self.registry = registry or DataExtensionRegistry(BUILTIN_HANDLERS if builtin_handlers else None)
        self.on_file_loaded = on_file_loaded
        self.clear_data()

    def clear_data(self) -> None:
        self._data: dict[str, dict[str, Any]] = {DATA_NAMESPACE: {}, PAGE_NAMESPACE: {}}

    def add_extension_handler(self, extension: str, handler: DataHandler) -> None:
        self.registry.add_extension_handler(extension, handler)

    @property
    def context_data(self) -> dict[str, dict[str, Any]]:
        return self._data

    def load_paths(self, paths: Iterable[str | Path]) -> list[str]:
        """Load every supported file under ``paths``; return the storage keys.

        Directories are walked in sorted order and later paths win conflicts.
        Files without a registered handler are skipped while walking.
        """
        loaded: list[str] = []
        for raw_path in paths:
            path = Path(raw_path)
            if path.is_file():
                loaded.append(self.load_file(path))
                continue
            if not path.is_dir():
                msg = f"data path '{path}' does not exist."
                raise DataError(msg)
            for candidate in sorted(item for item in path.rglob("*") if item.is_file()):
                if not self.registry.has_handler(candidate.suffix):
                    logger.debug("Skipping data file without handler: %s", candidate)
                    continue
                loaded.append(self.load_file(candidate))
        if not loaded:
            logger.info("Notice: no data files were found or loaded.")
        return loaded

    def load_file(self, path: str | Path) -> str:
        file = DataFile(Path(path))
        handler = self.registry.resolve(file.extension, path=str(file.path))
        logger.debug("Loading data file: %s", file.path)
        key, value = split_store_as(handler(file), file.name)
        self.store(key, value)
        if self.on_file_loaded is not None:
            self.on_file_loaded(file, key, value)
        return key

    def store(self, key: str, value: Any) -> None:
        existing = self._data[DATA_NAMESPACE]
        if key in existing:
            logger.debug("Data key '%s' overwritten by later data", key)
        existing[key] = value

    def parse_front_matter(self, source: str, name: str) -> tuple[dict[str, Any], str]:
        """Split YAML front-matter from ``source`` and store it under ``page.<name>``.

        ``Renderer.add_template(..., front_matter=...)`` calls this at registration.
        """
        match = _FRONT_MATTER.match(source)
        data: dict[str, Any] = {}
        body = source
        if match:
            loaded = yaml.safe_load(match.group(1))
            if loaded is not None and not isinstance(loaded, Mapping):
                msg = f"front-matter of '{name}' must be a mapping."
                raise DataError(msg)
            data = dict(loaded or {})
            body = source[match.end():]

        parts = _data_path(name)
        if not parts:
            msg = f"invalid page name '{name}'."
            raise DataError(msg)
        target = self._data[PAGE_NAMESPACE]
        for part in parts[:-1]:
            target = target.setdefault(part, {})
        target[parts[-1]] = data
        return data, body

    def page_data(self, name: str) -> dict[str, Any]:
        value: Any = self._data[PAGE_NAMESPACE]
        for part in _data_path(name):
            if not isinstance(value, Mapping) or part not in value:
                return {}
            value = value[part]
        return dict(value) if isinstance(value, Mapping) else {}

    def context_for_template(self, name: str) -> dict[str, Any]:
        """Global context data with the template's own front-matter lifted to the top."""
        context = dict(self.page_data(name))
        context.update(self._data)
        return context
