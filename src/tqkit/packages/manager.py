"""Pack discovery.

The :class:`PackageManager` finds packs in three places, in this order:

1. ``options.modules``: importable module names
2. ``options.pack_dirs``: directories whose child packages (``<dir>/<x>/__init__.py``)
   and modules (``<dir>/<x>.py``) are imported from disk
3. ``options.entry_point_group``: installed distributions advertising a
   module or a :class:`Pack` subclass under that group

A module contributes the classes listed in its ``__packs__`` attribute, or
else every :class:`Pack` subclass defined in it (or in its submodules).
Each pack becomes a :class:`PackageInfo` together with the resource files
found under its ``resources`` directory.
"""

from __future__ import annotations

import importlib
import importlib.util
import logging
import sys
from dataclasses import dataclass, field
from importlib.metadata import entry_points
from pathlib import Path
from types import ModuleType
from typing import Iterator

from tqkit.core.errors import PackageLoadError

from .options import PackOptions
from .pack import Pack

logger = logging.getLogger(__name__)

RESOURCE_SUFFIX = ".json"
_DISK_MODULE_PREFIX = "tqkit_pack_"


@dataclass(frozen=True)
class PackageInfo:
    """Descriptor of one discovered pack."""

    name: str
    module: ModuleType
    pack: Pack
    root: Path | None = None
    resource_files: tuple[Path, ...] = field(default_factory=tuple)

    @property
    def order(self) -> int:
        return self.pack.order


class PackageManager:
    """Discovers packs once and hands out their descriptors."""

    def __init__(self, options: PackOptions) -> None:
        self._options = options
        self._packs: list[PackageInfo] | None = None

    def get_pack_options(self) -> PackOptions:
        return self._options

    def get_packs(self) -> list[PackageInfo]:
        """Return discovered packs sorted by ``(order, name)``."""
        if self._packs is None:
            self._packs = self._discover()
        return list(self._packs)

    def get_pack(self, name: str) -> PackageInfo | None:
        for package in self.get_packs():
            if package.name == name:
                return package
        return None

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def _discover(self) -> list[PackageInfo]:
        found: dict[str, PackageInfo] = {}
        seen: set[type[Pack]] = set()

        for module, classes in self._iter_sources():
            for cls in classes:
                if cls in seen:
                    continue
                seen.add(cls)
                package = self._describe(module, cls)
                if not self._options.is_included(package.name):
                    logger.debug("Skipping pack %s (not included)", package.name)
                    continue
                if package.name in found:
                    other = found[package.name].module.__name__
                    raise PackageLoadError(
                        module.__name__,
                        f"pack name '{package.name}' already provided by {other}",
                    )
                found[package.name] = package

        packs = sorted(found.values(), key=lambda p: (p.order, p.name))
        logger.info(
            "Discovered %d packs: %s", len(packs), ", ".join(p.name for p in packs),
        )
        return packs

    def _iter_sources(self) -> Iterator[tuple[ModuleType, list[type[Pack]]]]:
        for module_name in self._options.modules:
            module = _import_module(module_name)
            yield module, _pack_classes(module)

        for directory in self._options.pack_dirs:
            if not directory.is_dir():
                raise PackageLoadError(str(directory), "pack directory does not exist")
            for path in sorted(directory.iterdir()):
                if path.name.startswith(("_", ".")):
                    continue
                if path.is_dir() and (path / "__init__.py").is_file():
                    module = _import_from_path(path.name, path / "__init__.py", package_dir=path)
                elif path.is_file() and path.suffix == ".py":
                    module = _import_from_path(path.stem, path)
                else:
                    continue
                yield module, _pack_classes(module)

        if self._options.entry_point_group:
            for ep in entry_points(group=self._options.entry_point_group):
                try:
                    target = ep.load()
                except Exception as exc:
                    raise PackageLoadError(f"entry point {ep.name}", str(exc)) from exc
                if isinstance(target, ModuleType):
                    yield target, _pack_classes(target)
                elif isinstance(target, type) and issubclass(target, Pack):
                    yield sys.modules[target.__module__], [target]
                else:
                    raise PackageLoadError(
                        f"entry point {ep.name}", "target is neither a module nor a Pack subclass",
                    )

    def _describe(self, module: ModuleType, cls: type[Pack]) -> PackageInfo:
        if not cls.name:
            raise PackageLoadError(module.__name__, f"{cls.__qualname__} has no name")
        try:
            pack = cls()
        except Exception as exc:
            raise PackageLoadError(module.__name__, f"cannot instantiate {cls.__qualname__}: {exc}") from exc

        root = _module_root(module)
        resources = self._resource_files(module, root)
        logger.debug(
            "Pack %s from %s (%d resource files)", cls.name, module.__name__, len(resources),
        )
        return PackageInfo(
            name=cls.name,
            module=module,
            pack=pack,
            root=root,
            resource_files=resources,
        )

    def _resource_files(self, module: ModuleType, root: Path | None) -> tuple[Path, ...]:
        if root is None:
            return ()
        resources_dir = root / self._options.resources_dirname
        if not _is_package(module):
            # Single-file packs share their directory; resources go in a subfolder
            resources_dir = resources_dir / Path(module.__file__ or "").stem
        if not resources_dir.is_dir():
            return ()
        return tuple(sorted(resources_dir.glob(f"*{RESOURCE_SUFFIX}")))


# ---------------------------------------------------------------------------
# Module helpers
# ---------------------------------------------------------------------------


def _import_module(module_name: str) -> ModuleType:
    try:
        return importlib.import_module(module_name)
    except ImportError as exc:
        raise PackageLoadError(module_name, str(exc)) from exc


def _import_from_path(name: str, location: Path, package_dir: Path | None = None) -> ModuleType:
    module_name = f"{_DISK_MODULE_PREFIX}{name}"
    existing = sys.modules.get(module_name)
    if existing is not None and getattr(existing, "__file__", None) == str(location):
        return existing

    spec = importlib.util.spec_from_file_location(
        module_name,
        location,
        submodule_search_locations=[str(package_dir)] if package_dir else None,
    )
    if spec is None or spec.loader is None:
        raise PackageLoadError(str(location), "not an importable Python module")

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        del sys.modules[module_name]
        raise PackageLoadError(str(location), f"{type(exc).__name__}: {exc}") from exc
    return module


def _pack_classes(module: ModuleType) -> list[type[Pack]]:
    declared = getattr(module, "__packs__", None)
    if declared is not None:
        for cls in declared:
            if not (isinstance(cls, type) and issubclass(cls, Pack)):
                raise PackageLoadError(module.__name__, f"__packs__ entry {cls!r} is not a Pack subclass")
        return list(declared)

    prefix = module.__name__ + "."
    return [
        obj
        for obj in vars(module).values()
        if isinstance(obj, type)
        and issubclass(obj, Pack)
        and obj is not Pack
        and (obj.__module__ == module.__name__ or obj.__module__.startswith(prefix))
    ]


def _is_package(module: ModuleType) -> bool:
    return hasattr(module, "__path__")


def _module_root(module: ModuleType) -> Path | None:
    if not getattr(module, "__file__", None):
        return None
    return Path(module.__file__).resolve().parent
