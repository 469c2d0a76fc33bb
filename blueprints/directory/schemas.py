from __future__ import annotations
from typing import Optional
from pydantic import BaseModel, Field


# ---------- Studios ----------
class StudioIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    sort_order: int = Field(ge=0, default=0)
    is_active: bool = True


class StudioOut(StudioIn):
    id: int


# ---------- Shooting types ----------
class ShootingTypeIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    is_active: bool = True


class ShootingTypeOut(ShootingTypeIn):
    id: int


# ---------- Studio ↔ shooting type ----------
class StudioShootingTypeIn(BaseModel):
    shooting_type_id: Optional[int] = None
    shooting_type: Optional[str] = Field(None, min_length=1, max_length=100)
    is_primary: bool = False
