"""
api/routes/v1/deals.py -- Deal pipeline REST endpoints.

Routes:
  POST   /api/v1/deals                         -- create (any caller)
  GET    /api/v1/deals                         -- paginated list, filter by stage/sector
  GET    /api/v1/deals/my                      -- caller's own deals
  GET    /api/v1/deals/admin                   -- full listing (admin)
  GET    /api/v1/deals/{id}                    -- single deal (owner or admin)
  PATCH  /api/v1/deals/{id}                    -- update non-sensitive fields (owner or admin)
  PATCH  /api/v1/deals/{id}/value              -- set deal_value (admin)
  DELETE /api/v1/deals/{id}                    -- delete (admin)
  POST   /api/v1/deals/{id}/notes              -- add a note (any caller)
  DELETE /api/v1/deals/{id}/notes/{note_id}    -- remove a note (author or admin)

Every deal that leaves this module passes through _render(), which projects
it for the caller's role. Non-admins never see deal_value, not even as null.

/my and /admin are registered before /{deal_id} so they are not captured as
path parameters.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from api.models import DealCreate, DealUpdate, DealValueUpdate, DealView, NoteCreate
from auth.dependencies import get_current_caller
from auth.models import Caller
from auth.policy import project_for_role
from deals.models import Deal, DealStage, Page
from deals.service import MAX_PAGE, MAX_PAGE_SIZE, DealService

# Auth policy: every route requires auth (get_current_caller). Finer-grained
# checks (ownership, admin-only) are made by DealService via auth/policy.py.
router = APIRouter()


def _deals(request: Request) -> DealService:
    return request.app.state.deals


def _render(deal: Deal, caller: Caller) -> dict[str, Any]:
    return project_for_role(DealView.from_deal(deal).model_dump(mode="json"), caller.role)


def _render_page(page: Page[Deal], caller: Caller) -> dict[str, Any]:
    return {
        "items": [_render(d, caller) for d in page.items],
        "page": page.page,
        "size": page.size,
        "total": page.total,
    }


@router.post("/deals", status_code=201)
def create_deal(
    request: Request,
    body: DealCreate,
    caller: Caller = Depends(get_current_caller),
) -> dict[str, Any]:
    deal = _deals(request).create_deal(
        caller,
        title=body.title,
        sector=body.sector,
        deal_type=body.deal_type,
        deal_value=body.deal_value,
    )
    return _render(deal, caller)


@router.get("/deals")
def list_deals(
    request: Request,
    stage: Optional[DealStage] = None,
    sector: Optional[str] = None,
    page: int = Query(0, ge=0, le=MAX_PAGE),
    size: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    caller: Caller = Depends(get_current_caller),
) -> dict[str, Any]:
    """List all deals. An unknown stage is rejected with 422."""
    result = _deals(request).list_deals(caller, stage=stage, sector=sector, page=page, size=size)
    return _render_page(result, caller)


@router.get("/deals/my")
def my_deals(
    request: Request,
    page: int = Query(0, ge=0, le=MAX_PAGE),
    size: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    caller: Caller = Depends(get_current_caller),
) -> dict[str, Any]:
    return _render_page(_deals(request).my_deals(caller, page=page, size=size), caller)


@router.get("/deals/admin")
def admin_deals(
    request: Request,
    stage: Optional[DealStage] = None,
    sector: Optional[str] = None,
    page: int = Query(0, ge=0, le=MAX_PAGE),
    size: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    caller: Caller = Depends(get_current_caller),
) -> dict[str, Any]:
    result = _deals(request).list_all_deals(caller, stage=stage, sector=sector, page=page, size=size)
    return _render_page(result, caller)


@router.get("/deals/{deal_id}")
def get_deal(
    request: Request,
    deal_id: int,
    caller: Caller = Depends(get_current_caller),
) -> dict[str, Any]:
    return _render(_deals(request).get_deal(caller, deal_id), caller)


@router.patch("/deals/{deal_id}")
def update_deal(
    request: Request,
    deal_id: int,
    body: DealUpdate,
    caller: Caller = Depends(get_current_caller),
) -> dict[str, Any]:
    """Update title, sector, deal_type or stage. A deal_value in the body is ignored."""
    deal = _deals(request).update_deal(
        caller,
        deal_id,
        title=body.title,
        sector=body.sector,
        deal_type=body.deal_type,
        stage=body.stage,
    )
    return _render(deal, caller)


@router.patch("/deals/{deal_id}/value")
def update_deal_value(
    request: Request,
    deal_id: int,
    body: DealValueUpdate,
    caller: Caller = Depends(get_current_caller),
) -> dict[str, Any]:
    deal = _deals(request).update_deal_value(caller, deal_id, body.deal_value)
    return _render(deal, caller)


@router.delete("/deals/{deal_id}", status_code=204)
def delete_deal(
    request: Request,
    deal_id: int,
    caller: Caller = Depends(get_current_caller),
) -> Response:
    _deals(request).delete_deal(caller, deal_id)
    return Response(status_code=204)


@router.post("/deals/{deal_id}/notes", status_code=201)
def add_note(
    request: Request,
    deal_id: int,
    body: NoteCreate,
    caller: Caller = Depends(get_current_caller),
) -> dict[str, Any]:
    return _render(_deals(request).add_note(caller, deal_id, body.note), caller)


@router.delete("/deals/{deal_id}/notes/{note_id}")
def delete_note(
    request: Request,
    deal_id: int,
    note_id: str,
    caller: Caller = Depends(get_current_caller),
) -> dict[str, Any]:
    return _render(_deals(request).delete_note(caller, deal_id, note_id), caller)
