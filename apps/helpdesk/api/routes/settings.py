from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from apps.helpdesk.dependencies.tickets import SettingsStoreDep
from apps.helpdesk.services.settings import SettingNotFoundError

router = APIRouter(prefix="/settings", tags=["settings"])

_MISSING = object()


class SettingValue(BaseModel):
    name: str
    value: Any = None


class SettingUpdateRequest(BaseModel):
    value: Any = None


@router.get("/{name}", response_model=SettingValue)
async def get_setting(name: str, store: SettingsStoreDep) -> SettingValue:
    value = await store.get(name, _MISSING)
    if value is _MISSING:
        raise HTTPException(status_code=404, detail=f"Can't find config setting '{name}'")
    return SettingValue(name=name, value=value)


@router.put("/{name}", response_model=SettingValue)
async def update_setting(name: str, payload: SettingUpdateRequest, store: SettingsStoreDep) -> SettingValue:
    try:
        await store.set(name, payload.value)
    except SettingNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.args[0]) from exc
    return SettingValue(name=name, value=await store.get(name))
