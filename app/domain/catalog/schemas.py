"""Catalog schemas"""

from typing import Optional

from pydantic import BaseModel


class BranchResponse(BaseModel):
    id: int
    name: str
    address: Optional[str] = None

    class Config:
        from_attributes = True


class BarberResponse(BaseModel):
    id: int
    name: str
    branch_id: Optional[int] = None

    class Config:
        from_attributes = True


class ServiceResponse(BaseModel):
    id: int
    name: str
    price: int
    duration_minutes: Optional[int] = None
    sessions: int
    is_extra: bool

    class Config:
        from_attributes = True
