"""Catalog repository - branches, barbers and services"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Barber, Branch, Service


class CatalogRepository:
    """Read access to the catalog; writes are managed outside this API"""

    @staticmethod
    def list_branches(db: Session) -> list[Branch]:
        return db.query(Branch).order_by(Branch.name).all()

    @staticmethod
    def get_branch(db: Session, branch_id: int) -> Optional[Branch]:
        return db.query(Branch).filter(Branch.id == branch_id).first()

    @staticmethod
    def list_barbers(db: Session, branch_id: Optional[int] = None) -> list[Barber]:
        query = db.query(Barber).filter(Barber.active.is_(True))
        if branch_id:
            query = query.filter(Barber.branch_id == branch_id)
        return query.order_by(Barber.name).all()

    @staticmethod
    def get_barber(db: Session, barber_id: int) -> Optional[Barber]:
        return db.query(Barber).filter(Barber.id == barber_id).first()

    @staticmethod
    def list_services(db: Session, include_extras: bool = True) -> list[Service]:
        query = db.query(Service).filter(Service.active.is_(True))
        if not include_extras:
            query = query.filter(Service.is_extra.is_(False))
        return query.order_by(Service.is_extra, Service.name).all()

    @staticmethod
    def get_service(db: Session, service_id: int) -> Optional[Service]:
        return db.query(Service).filter(Service.id == service_id).first()

    @staticmethod
    def get_services_by_ids(db: Session, service_ids: list[int]) -> list[Service]:
        if not service_ids:
            return []
        return db.query(Service).filter(Service.id.in_(service_ids)).all()

    @staticmethod
    def get_services_by_names(db: Session, names: list[str]) -> dict[str, Service]:
        if not names:
            return {}
        services = db.query(Service).filter(Service.name.in_(names)).order_by(Service.id).all()
        by_name: dict[str, Service] = {}
        for service in services:
            by_name.setdefault(service.name, service)
        return by_name
