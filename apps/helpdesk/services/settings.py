"""Runtime product settings backed by the `settings` table.

Values are read through a per-store cache that lives as long as the store
instance. Every write through the store invalidates the cache, so the next
read reloads the whole table. String values may reference other settings with
``#{config.<name>}``; references are resolved against the raw stored values
when the cache is built.
"""

from __future__ import annotations

import asyncio
import logging
import re

from typing import Any, Mapping

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from apps.helpdesk.tickets.clock import Clock, SystemClock
from packages.db.models import SettingTable

logger = logging.getLogger(__name__)

_REFERENCE_RE = re.compile(r"#\{config\.(.+?)\}")

DEFAULT_SETTINGS: Mapping[str, tuple[Any, str]] = {
    "product_name": ("Helpdesk", "Name shown to customers and agents."),
    "ticket_default_state": ("new", "State assigned to newly created tickets."),
}


class SettingNotFoundError(KeyError):
    """Raised when a setting does not exist."""


def interpolate(config: Mapping[str, Any]) -> dict[str, Any]:
    """Resolve ``#{config.<name>}`` references in string values."""

    resolved: dict[str, Any] = {}
    for key, value in config.items():
        if isinstance(value, str):
            value = _REFERENCE_RE.sub(lambda match: _as_text(config.get(match.group(1))), value)
        resolved[key] = value
    return resolved


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


class SettingsStore:
    """Read-through cache over the settings table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        clock: Clock | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._cache: dict[str, Any] | None = None
        # Bumped on every write; a load that straddles a write must not cache.
        self._generation = 0
        self._load_lock = asyncio.Lock()

    async def load(self) -> dict[str, Any]:
        cached = self._cache
        if cached is not None:
            return cached
        async with self._load_lock:
            if self._cache is not None:
                return self._cache
            generation = self._generation
            async with self._session_factory() as session:
                result = await session.execute(select(SettingTable).order_by(SettingTable.id.asc()))
                raw = {row.name: row.value for row in result.scalars().all()}
            config = interpolate(raw)
            if generation == self._generation:
                self._cache = config
                logger.debug("Loaded %d settings", len(config))
            else:
                logger.debug("Settings changed while loading; not caching")
            return config

    async def get(self, name: str, default: Any = None) -> Any:
        config = await self.load()
        return config.get(name, default)

    async def create(self, name: str, value: Any, *, description: str = "") -> None:
        async with self._session_factory() as session:
            async with session.begin():
                session.add(
                    SettingTable(
                        name=name,
                        description=description,
                        value=value,
                        initial_value=value,
                        updated_at=self._clock.now(),
                    )
                )
        self.invalidate()

    async def set(self, name: str, value: Any) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(select(SettingTable).where(SettingTable.name == name))
                row = result.scalars().first()
                if row is None:
                    raise SettingNotFoundError(f"Can't find config setting '{name}'")
                row.value = value
                row.updated_at = self._clock.now()
        self.invalidate()
        logger.info("Setting %s updated", name)

    async def reset(self, name: str) -> None:
        """Restore a setting to the value it was created with."""

        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(select(SettingTable).where(SettingTable.name == name))
                row = result.scalars().first()
                if row is None:
                    raise SettingNotFoundError(f"Can't find config setting '{name}'")
                row.value = row.initial_value
                row.updated_at = self._clock.now()
        self.invalidate()

    async def ensure_defaults(self, defaults: Mapping[str, tuple[Any, str]] | None = None) -> None:
        """Create any missing default settings, leaving existing values alone."""

        wanted = DEFAULT_SETTINGS if defaults is None else defaults
        async with self._session_factory() as session:
            result = await session.execute(select(SettingTable.name))
            existing = set(result.scalars().all())
        for name, (value, description) in wanted.items():
            if name not in existing:
                await self.create(name, value, description=description)

    def invalidate(self) -> None:
        self._generation += 1
        self._cache = None
