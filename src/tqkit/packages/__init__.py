"""Plugin packs for FastAPI applications.

Public API
----------
::

    from tqkit.packages import (
        AppBuilder,
        Pack,
        PackOptions,
        add_packages,
        use_packages,
        Inject,
        PackConfig,
        Localizer,
    )
"""

from __future__ import annotations

from tqkit.packages.builder import (
    AppBuilder,
    add_module_localization,
    add_packages,
    use_module_localization,
    use_packages,
)
from tqkit.packages.configuration import PackConfig, PackConfiguration
from tqkit.packages.loader import load_pack, use_packs
from tqkit.packages.localization import (
    LocalizationResourceManager,
    LocalizedString,
    Localizer,
    ModuleStringLocalizer,
    ModuleStringLocalizerFactory,
    RequestCulture,
    get_request_culture,
)
from tqkit.packages.manager import PackageInfo, PackageManager
from tqkit.packages.middleware import (
    RequestLocalizationMiddleware,
    RequestLocalizationOptions,
)
from tqkit.packages.options import PackOptions
from tqkit.packages.pack import Pack
from tqkit.packages.services import (
    Inject,
    Lifetime,
    ServiceCollection,
    ServiceProvider,
    ServiceScope,
)

__all__ = [
    "AppBuilder",
    "Inject",
    "Lifetime",
    "LocalizationResourceManager",
    "LocalizedString",
    "Localizer",
    "ModuleStringLocalizer",
    "ModuleStringLocalizerFactory",
    "Pack",
    "PackConfig",
    "PackConfiguration",
    "PackOptions",
    "PackageInfo",
    "PackageManager",
    "RequestCulture",
    "RequestLocalizationMiddleware",
    "RequestLocalizationOptions",
    "ServiceCollection",
    "ServiceProvider",
    "ServiceScope",
    "add_module_localization",
    "add_packages",
    "get_request_culture",
    "load_pack",
    "use_module_localization",
    "use_packages",
    "use_packs",
]
