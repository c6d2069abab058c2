from __future__ import annotations

import asyncio
from datetime import timezone

import pytest
from sqlmodel import select

from apps.helpdesk.services.settings import SettingNotFoundError, SettingsStore, interpolate
from apps.helpdesk.tickets.clock import ManualClock
from packages.db.models import SettingTable


def test_interpolate_resolves_references():
    config = {
        "product_name": "Helpdesk",
        "notification_sender": "#{config.product_name} <noreply@example.com>",
        "missing_ref": "x#{config.nope}y",
        "max_articles": 10,
    }

    resolved = interpolate(config)

    assert resolved["notification_sender"] == "Helpdesk <noreply@example.com>"
    assert resolved["missing_ref"] == "xy"
    assert resolved["max_articles"] == 10
    assert config["notification_sender"].startswith("#{")


@pytest.mark.asyncio
async def test_get_reads_through_and_caches(settings_store: SettingsStore, session_factory):
    await settings_store.create("product_name", "Helpdesk")
    assert await settings_store.get("product_name") == "Helpdesk"

    # written behind the store's back, so the cached value is still served
    async with session_factory() as session:
        async with session.begin():
            row = (await session.execute(select(SettingTable).where(SettingTable.name == "product_name"))).scalars().one()
            row.value = "Changed elsewhere"

    assert await settings_store.get("product_name") == "Helpdesk"
    settings_store.invalidate()
    assert await settings_store.get("product_name") == "Changed elsewhere"


@pytest.mark.asyncio
async def test_set_invalidates_cache(settings_store: SettingsStore):
    await settings_store.create("product_name", "Helpdesk")
    await settings_store.create("fqdn_title", "#{config.product_name} Support")
    assert await settings_store.get("fqdn_title") == "Helpdesk Support"

    await settings_store.set("product_name", "Acme")

    assert await settings_store.get("fqdn_title") == "Acme Support"


@pytest.mark.asyncio
async def test_set_unknown_setting_raises(settings_store: SettingsStore):
    with pytest.raises(SettingNotFoundError):
        await settings_store.set("does_not_exist", 1)


@pytest.mark.asyncio
async def test_reset_restores_initial_value(settings_store: SettingsStore):
    await settings_store.create("ticket_default_state", "new")
    await settings_store.set("ticket_default_state", "open")

    await settings_store.reset("ticket_default_state")

    assert await settings_store.get("ticket_default_state") == "new"


@pytest.mark.asyncio
async def test_ensure_defaults_keeps_existing_values(settings_store: SettingsStore):
    await settings_store.create("product_name", "Acme")

    await settings_store.ensure_defaults()

    assert await settings_store.get("product_name") == "Acme"
    assert await settings_store.get("ticket_default_state") == "new"


class _PausingSession:
    """Session wrapper that parks after its first query until released."""

    def __init__(self, session, paused: asyncio.Event, release: asyncio.Event) -> None:
        self._session = session
        self._paused = paused
        self._release = release

    async def __aenter__(self):
        await self._session.__aenter__()
        return self

    async def __aexit__(self, *exc_info):
        return await self._session.__aexit__(*exc_info)

    async def execute(self, *args, **kwargs):
        result = await self._session.execute(*args, **kwargs)
        self._paused.set()
        await self._release.wait()
        return result


class _PausingSessionFactory:
    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory
        self.armed = False
        self.paused = asyncio.Event()
        self.release = asyncio.Event()

    def __call__(self):
        session = self._session_factory()
        if self.armed:
            self.armed = False
            return _PausingSession(session, self.paused, self.release)
        return session


@pytest.mark.asyncio
async def test_write_during_load_is_not_lost(session_factory, clock: ManualClock):
    factory = _PausingSessionFactory(session_factory)
    store = SettingsStore(factory, clock=clock)
    await store.create("product_name", "Helpdesk")

    factory.armed = True
    reader = asyncio.create_task(store.get("product_name"))
    await factory.paused.wait()
    await store.set("product_name", "Renamed")
    factory.release.set()

    assert await reader == "Helpdesk"
    assert await store.get("product_name") == "Renamed"


@pytest.mark.asyncio
async def test_writes_are_stamped_by_the_store_clock(
    settings_store: SettingsStore, session_factory, clock: ManualClock
):
    await settings_store.create("product_name", "Helpdesk")
    written_at = clock.advance(minutes=3)
    await settings_store.set("product_name", "Acme")

    async with session_factory() as session:
        row = (await session.execute(select(SettingTable).where(SettingTable.name == "product_name"))).scalars().one()

    assert row.updated_at.replace(tzinfo=timezone.utc) == written_at
