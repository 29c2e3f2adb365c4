"""
Reference-data routes, all backed by ``ricemill.services.reference``.

  /api/categories                 /api/products
  /api/settings/godown            /api/settings/silo
  /api/hr/designation             /api/hr/employee
  /api/party/types                /api/party/parties
  /api/accounts/head-income       /api/accounts/head-expense
  /api/accounts/head-bank         /api/accounts/head-others
  /api/party/party-due            /api/party/party-debts

Each resource: GET / (``status`` = active | inactive | all), GET /{id},
POST / (201), PUT /{id}, DELETE / with {"ids": [...]} (soft delete).
"""
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlmodel import Session

from ricemill.core.config import settings
from ricemill.core.database import get_session, unit_of_work
from ricemill.core.errors import NotFoundError, ValidationError
from ricemill.schemas.envelope import BulkIds, ok, page_meta
from ricemill.schemas.reference import (
    AccountHeadIn,
    AccountHeadUpdate,
    CategoryIn,
    CategoryUpdate,
    EmployeeIn,
    EmployeeUpdate,
    NamedIn,
    NamedUpdate,
    PartyDueIn,
    PartyDueUpdate,
    PartyIn,
    PartyUpdate,
    ProductIn,
    ProductUpdate,
    StoreIn,
    StoreUpdate,
)
from ricemill.services import reference

reference_router = APIRouter(prefix="/api", tags=["reference"])

# Query parameter -> column, applied when the entity has that column
_LIST_FILTERS = {"categoryId": "category_id", "typeId": "type_id", "designationId": "designation_id"}


def _extra_filters(request: Request, model) -> dict[str, Any]:
    filters = {}
    for param, column in _LIST_FILTERS.items():
        raw = request.query_params.get(param)
        if raw is None or not hasattr(model, column):
            continue
        try:
            filters[column] = int(raw)
        except ValueError:
            raise ValidationError(f"{param} must be an integer")
    return filters


def register_entity_routes(
    router: APIRouter,
    path: str,
    entity: str,
    create_model: type,
    update_model: type,
    fixed: Optional[dict[str, Any]] = None,
) -> None:
    """Attach list/get/create/update/bulk-delete endpoints for one entity."""
    fixed = fixed or {}
    spec = reference.spec_for(entity)
    label = spec.label

    def _get_owned(session: Session, pk: int):
        obj = reference.get_entity(session, entity, pk)
        for field, value in fixed.items():
            if getattr(obj, field) != value:
                raise NotFoundError(f"{label} not found")
        return obj

    @router.get(path, name=f"list_{path}")
    def list_entities(
        request: Request,
        entity_status: str = Query(default="active", alias="status"),
        search: Optional[str] = Query(default=None),
        page: int = Query(default=1, ge=1),
        page_size: int = Query(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE, alias="pageSize"),
        session: Session = Depends(get_session),
    ):
        rows, total = reference.list_entities(
            session,
            entity,
            status=None if entity_status == "all" else entity_status,
            search=search,
            filters={**_extra_filters(request, spec.model), **fixed},
            page=page,
            page_size=page_size,
        )
        return ok(rows, meta=page_meta(total, page, page_size))

    @router.get(path + "/{pk}", name=f"get_{path}")
    def get_entity(pk: int, session: Session = Depends(get_session)):
        return ok(_get_owned(session, pk))

    @router.post(path, status_code=status.HTTP_201_CREATED, name=f"create_{path}")
    def create_entity(body: create_model, session: Session = Depends(get_session)):
        with unit_of_work(session, duplicate_message=f"{label} already exists"):
            obj = reference.create_entity(session, entity, {**body.values(), **fixed})
        session.refresh(obj)
        return ok(obj, message=f"{label} created successfully")

    @router.put(path + "/{pk}", name=f"update_{path}")
    def update_entity(pk: int, body: update_model, session: Session = Depends(get_session)):
        values = body.values()
        if not values:
            raise ValidationError("Nothing to update")
        with unit_of_work(session, duplicate_message=f"{label} already exists"):
            _get_owned(session, pk)
            obj = reference.update_entity(session, entity, pk, values)
        session.refresh(obj)
        return ok(obj, message=f"{label} updated successfully")

    @router.delete(path, name=f"delete_{path}")
    def delete_entities(body: BulkIds, session: Session = Depends(get_session)):
        with unit_of_work(session):
            for pk in dict.fromkeys(body.ids):
                _get_owned(session, pk)
            changed = reference.deactivate_entities(session, entity, body.ids)
        return ok({"deletedCount": changed}, message=f"{changed} {label.lower()}(s) deleted successfully")


register_entity_routes(reference_router, "/categories", "category", CategoryIn, CategoryUpdate)
register_entity_routes(reference_router, "/products", "product", ProductIn, ProductUpdate)
register_entity_routes(reference_router, "/settings/godown", "godown", StoreIn, StoreUpdate)
register_entity_routes(reference_router, "/settings/silo", "silo", StoreIn, StoreUpdate)
register_entity_routes(reference_router, "/hr/designation", "designation", NamedIn, NamedUpdate)
register_entity_routes(reference_router, "/hr/employee", "employee", EmployeeIn, EmployeeUpdate)
register_entity_routes(reference_router, "/party/types", "party_type", NamedIn, NamedUpdate)
register_entity_routes(reference_router, "/party/parties", "party", PartyIn, PartyUpdate)

for _suffix, _kind in (("income", "income"), ("expense", "expense"), ("bank", "bank"), ("others", "other")):
    register_entity_routes(
        reference_router,
        f"/accounts/head-{_suffix}",
        "account_head",
        AccountHeadIn,
        AccountHeadUpdate,
        fixed={"kind": _kind},
    )

register_entity_routes(reference_router, "/party/party-due", "party_due", PartyDueIn, PartyDueUpdate, fixed={"kind": "due"})
register_entity_routes(
    reference_router, "/party/party-debts", "party_due", PartyDueIn, PartyDueUpdate, fixed={"kind": "debt"}
)
