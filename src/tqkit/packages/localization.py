"""Module-scoped string localization.

Every pack may ship ``resources/<culture>.json`` files; the application may
ship shared ones under ``<root>/resources``. A file holds a JSON object whose
nested keys are flattened with dots::

    {"greeting": {"hello": "Hello, {name}!"}}   ->   "greeting.hello"

Lookup for module ``m``, culture ``en-US`` and key ``k`` tries, in order:
``m/en-US``, ``m/en``, ``shared/en-US``, ``shared/en``; when nothing matches
the key itself is returned with ``resource_not_found`` set.
"""

from __future__ import annotations

import json
import logging
from contextvars import ContextVar, Token
from pathlib import Path
from typing import Any, NamedTuple

from fastapi import Depends

from tqkit.core.errors import ConfigError

from .manager import RESOURCE_SUFFIX, PackageInfo
from .pack import Pack
from .services import Inject

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Current culture
# ---------------------------------------------------------------------------


class RequestCulture(NamedTuple):
    culture: str
    ui_culture: str


_request_culture: ContextVar[RequestCulture | None] = ContextVar(
    "tqkit_request_culture", default=None
)


def get_request_culture() -> RequestCulture | None:
    """Culture chosen for the current request, if any."""
    return _request_culture.get()


def set_request_culture(culture: RequestCulture) -> Token:
    return _request_culture.set(culture)


def reset_request_culture(token: Token) -> None:
    _request_culture.reset(token)


def parent_culture(culture: str) -> str | None:
    """``"en-US"`` -> ``"en"``; neutral cultures have no parent."""
    head, sep, _ = culture.rpartition("-")
    return head if sep else None


def _culture_chain(culture: str) -> list[str]:
    chain = []
    current: str | None = culture.lower()
    while current:
        chain.append(current)
        current = parent_culture(current)
    return chain


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------


def _flatten(data: dict[str, Any], prefix: str = "") -> dict[str, str]:
    flat: dict[str, str] = {}
    for key, value in data.items():
        full_key = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(_flatten(value, f"{full_key}."))
        else:
            flat[full_key] = str(value)
    return flat


def _read_resource_file(path: Path) -> dict[str, str]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in resource file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Resource file {path} must contain a JSON object")
    return _flatten(data)


class LocalizationResourceManager:
    """In-memory store of module and shared resource strings."""

    def __init__(self, resources_dirname: str = "resources", default_culture: str = "en-US") -> None:
        self.resources_dirname = resources_dirname
        self.default_culture = default_culture
        # module name -> culture -> key -> value (cultures lower-cased)
        self._modules: dict[str, dict[str, dict[str, str]]] = {}
        self._shared: dict[str, dict[str, str]] = {}

    def load_module_resources(self, package: PackageInfo) -> int:
        """Load every resource file of *package*; returns the number of files."""
        tables = self._modules.setdefault(package.name, {})
        for path in package.resource_files:
            tables.setdefault(path.stem.lower(), {}).update(_read_resource_file(path))
        if package.resource_files:
            logger.info(
                "Loaded %d resource files for pack %s", len(package.resource_files), package.name,
            )
        return len(package.resource_files)

    def load_shared_resources(self, root: str | Path) -> int:
        """Load ``<root>/<resources_dirname>/*.json``; returns the number of files."""
        directory = Path(root) / self.resources_dirname
        if not directory.is_dir():
            logger.debug("No shared resources under %s", directory)
            return 0
        files = sorted(directory.glob(f"*{RESOURCE_SUFFIX}"))
        for path in files:
            self._shared.setdefault(path.stem.lower(), {}).update(_read_resource_file(path))
        logger.info("Loaded %d shared resource files from %s", len(files), directory)
        return len(files)

    def lookup(self, module: str | None, culture: str, key: str) -> str | None:
        chain = _culture_chain(culture)
        tables = self._modules.get(module, {}) if module else {}
        for table_set in (tables, self._shared):
            for name in chain:
                value = table_set.get(name, {}).get(key)
                if value is not None:
                    return value
        return None

    def all_strings(self, module: str | None, culture: str, include_parent_cultures: bool = True) -> dict[str, str]:
        """Every key visible to *module* in *culture*, most specific value wins."""
        chain = _culture_chain(culture)
        if not include_parent_cultures:
            chain = chain[:1]
        tables = self._modules.get(module, {}) if module else {}
        merged: dict[str, str] = {}
        for table_set in (self._shared, tables):
            for name in reversed(chain):
                merged.update(table_set.get(name, {}))
        return merged

    def cultures(self, module: str | None = None) -> set[str]:
        if module is None:
            return set(self._shared)
        return set(self._modules.get(module, {}))

    def clear(self) -> None:
        self._modules.clear()
        self._shared.clear()


# ---------------------------------------------------------------------------
# Localizers
# ---------------------------------------------------------------------------


class LocalizedString(NamedTuple):
    name: str
    value: str
    resource_not_found: bool = False

    def __str__(self) -> str:
        return self.value


class ModuleStringLocalizer:
    """String lookup bound to one module (pack).

    Uses the request's UI culture, unless a fixed *culture* is given.
    """

    def __init__(
        self,
        resources: LocalizationResourceManager,
        module: str | None,
        culture: str | None = None,
    ) -> None:
        self._resources = resources
        self._module = module
        self._culture = culture

    @property
    def culture(self) -> str:
        if self._culture:
            return self._culture
        current = get_request_culture()
        return current.ui_culture if current else self._resources.default_culture

    def __getitem__(self, key: str) -> LocalizedString:
        return self.get(key)

    def get(self, key: str, *args: Any, **kwargs: Any) -> LocalizedString:
        value = self._resources.lookup(self._module, self.culture, key)
        if value is None:
            return LocalizedString(key, key, resource_not_found=True)
        if args or kwargs:
            value = value.format(*args, **kwargs)
        return LocalizedString(key, value)

    def get_all_strings(self, include_parent_cultures: bool = True) -> list[LocalizedString]:
        strings = self._resources.all_strings(self._module, self.culture, include_parent_cultures)
        return [LocalizedString(k, v) for k, v in sorted(strings.items())]

    def with_culture(self, culture: str) -> ModuleStringLocalizer:
        return ModuleStringLocalizer(self._resources, self._module, culture)


class ModuleStringLocalizerFactory:
    """Creates localizers for packs (by name or :class:`Pack` subclass)."""

    def __init__(self, resources: LocalizationResourceManager) -> None:
        self._resources = resources

    def create(self, module: str | type[Pack] | None = None) -> ModuleStringLocalizer:
        name = module.name if isinstance(module, type) else module
        return ModuleStringLocalizer(self._resources, name)


def Localizer(module: str | type[Pack] | None = None) -> Any:
    """FastAPI dependency returning a localizer for *module*."""

    async def _resolve(
        factory: ModuleStringLocalizerFactory = Inject(ModuleStringLocalizerFactory),
    ) -> ModuleStringLocalizer:
        return factory.create(module)

    return Depends(_resolve)
