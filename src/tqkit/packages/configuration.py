"""Typed access to per-pack configuration sections.

Each pack reads its own ``[packs.<name>]`` table from the settings file
(or ``TQKIT_PACKS__<NAME>__<KEY>`` env vars) through a pydantic model::

    class NotesConfig(BaseModel):
        max_length: int = 280

    @router.post("/")
    async def create(config: NotesConfig = PackConfig(NotesConfig, "notes")):
        ...
"""

from __future__ import annotations

from typing import Any, TypeVar

from fastapi import Depends
from pydantic import BaseModel, ValidationError

from tqkit.core.config import Settings
from tqkit.core.errors import ConfigError

from .pack import Pack
from .services import ServiceScope, get_service_scope

M = TypeVar("M", bound=BaseModel)


class PackConfiguration:
    """Scoped service validating pack config sections into models."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def get(self, model: type[M], pack: str | type[Pack]) -> M:
        """Return the section of *pack* validated as *model*.

        Raises:
            ConfigError: If the section does not validate.
        """
        name = pack if isinstance(pack, str) else pack.name
        try:
            return model.model_validate(self._settings.pack_section(name))
        except ValidationError as exc:
            raise ConfigError(f"Invalid configuration for pack '{name}': {exc}") from exc

    def raw(self, pack: str | type[Pack]) -> dict[str, Any]:
        name = pack if isinstance(pack, str) else pack.name
        return self._settings.pack_section(name)


def PackConfig(model: type[M], pack: str | type[Pack]) -> Any:
    """FastAPI dependency returning the validated config of *pack*."""

    async def _resolve(scope: ServiceScope = Depends(get_service_scope)) -> Any:
        return scope.get_required_service(PackConfiguration).get(model, pack)

    return Depends(_resolve)
