"""Catalog router - public read endpoints"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from .repository import CatalogRepository
from .schemas import BarberResponse, BranchResponse, ServiceResponse

router = APIRouter(tags=["Catalog"])


@router.get("/branches", response_model=list[BranchResponse])
async def list_branches(db: Session = Depends(get_db)):
    return CatalogRepository.list_branches(db)


@router.get("/barbers", response_model=list[BarberResponse])
async def list_barbers(branch_id: Optional[int] = Query(None), db: Session = Depends(get_db)):
    return CatalogRepository.list_barbers(db, branch_id)


@router.get("/services", response_model=list[ServiceResponse])
async def list_services(
    include_extras: bool = Query(True), db: Session = Depends(get_db)
):
    return CatalogRepository.list_services(db, include_extras)
