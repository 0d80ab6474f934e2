"""Options controlling pack discovery and module localization."""

from __future__ import annotations

from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from pathlib import Path

from tqkit.core.config import LocalizationConfig, PackagesConfig


@dataclass
class PackOptions:
    """Where to look for packs and whether to enable localization.

    Seeded from :class:`~tqkit.core.config.PackagesConfig` and then handed
    to the ``configure`` callback of ``add_packages`` for in-code changes.
    """

    pack_dirs: list[Path] = field(default_factory=list)
    modules: list[str] = field(default_factory=list)
    entry_point_group: str | None = "tqkit.packages"
    include: list[str] = field(default_factory=lambda: ["*"])
    enable_localizer: bool = False
    resources_dirname: str = "resources"
    shared_resources_root: Path | None = None
    localization: LocalizationConfig = field(default_factory=LocalizationConfig)

    @classmethod
    def from_config(cls, config: PackagesConfig) -> PackOptions:
        return cls(
            pack_dirs=[Path(d) for d in config.dirs],
            modules=list(config.modules),
            entry_point_group=config.entry_point_group,
            include=list(config.include),
            enable_localizer=config.enable_localizer,
            resources_dirname=config.resources_dirname,
            shared_resources_root=(
                Path(config.shared_resources_root)
                if config.shared_resources_root
                else None
            ),
            localization=config.localization.model_copy(deep=True),
        )

    def add_pack_dir(self, path: str | Path) -> PackOptions:
        self.pack_dirs.append(Path(path))
        return self

    def add_module(self, module_name: str) -> PackOptions:
        self.modules.append(module_name)
        return self

    def is_included(self, pack_name: str) -> bool:
        return any(fnmatchcase(pack_name, pattern) for pattern in self.include)
