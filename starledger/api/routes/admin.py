"""
starledger.api.routes.admin — Admin moderation & grant endpoints (JWT-protected)
=================================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from starledger.api.deps import (
    get_config,
    get_current_admin,
    get_engine,
    get_notifier,
    get_scheduler,
)
from starledger.config import StarLedgerConfig
from starledger.database.models import Currency, MemberRole, ReviewStatus
from starledger.services import admin_service, review_service
from starledger.services.notifier import ConnectionRegistry
from starledger.services.scheduler import LedgerScheduler

router = APIRouter(prefix="/admin", tags=["admin"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class ApproveIn(BaseModel):
    stars: int | None = Field(default=None, ge=1)


class RejectIn(BaseModel):
    reason: str | None = None


class IssueIn(BaseModel):
    member_id: str = Field(min_length=2)
    currency: Currency = Currency.BD
    amount: int
    reason: str | None = None


class RoleIn(BaseModel):
    role: MemberRole


def _review_out(review) -> dict:
    return admin_service.row_to_dict(review)


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------
@router.get("/overview")
def overview(
    admin: str = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    return admin_service.get_overview(engine)


@router.get("/activity")
def activity(
    limit: int = Query(50, le=200),
    admin: str = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    return admin_service.activity_stream(engine, limit=limit)


@router.get("/audit")
def audit(
    limit: int = Query(50, le=200),
    admin: str = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    return admin_service.recent_admin_actions(engine, limit=limit)


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------
@router.get("/reviews")
def list_reviews(
    status: ReviewStatus | None = ReviewStatus.PENDING,
    admin: str = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    return review_service.list_reviews(engine, status)


@router.post("/reviews/{review_id}/approve")
def approve_review(
    review_id: int,
    body: ApproveIn | None = None,
    admin: str = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
    cfg: StarLedgerConfig = Depends(get_config),
    notifier: ConnectionRegistry = Depends(get_notifier),
):
    stars = body.stars if body and body.stars else cfg.review_default_stars
    review = review_service.approve_review(
        engine, review_id, admin_id=admin, stars=stars, notifier=notifier,
    )
    return {"ok": True, "stars": stars, "review": _review_out(review)}


@router.post("/reviews/{review_id}/reject")
def reject_review(
    review_id: int,
    body: RejectIn | None = None,
    admin: str = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
    notifier: ConnectionRegistry = Depends(get_notifier),
):
    review = review_service.reject_review(
        engine, review_id,
        admin_id=admin,
        reason=body.reason if body else None,
        notifier=notifier,
    )
    return {"ok": True, "review": _review_out(review)}


# ---------------------------------------------------------------------------
# Grants & roles
# ---------------------------------------------------------------------------
@router.post("/issue")
def issue_currency(
    body: IssueIn,
    admin: str = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
    notifier: ConnectionRegistry = Depends(get_notifier),
):
    result = admin_service.issue_currency(
        engine,
        admin_id=admin,
        member_id=body.member_id,
        currency=body.currency,
        amount=body.amount,
        reason=body.reason,
        notifier=notifier,
    )
    return {"ok": True, **result}


@router.put("/members/{member_id}/role")
def set_role(
    member_id: str,
    body: RoleIn,
    admin: str = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    member = admin_service.set_member_role(
        engine, admin_id=admin, member_id=member_id, role=body.role,
    )
    return {"ok": True, "member_id": member.id, "role": member.role}


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------
@router.post("/reconcile")
async def reconcile_now(
    admin: str = Depends(get_current_admin),
    scheduler: LedgerScheduler = Depends(get_scheduler),
):
    """Run one share reconciliation pass immediately.

    Goes through the scheduled job's guard: answers 409 while a pass is
    already in flight.
    """
    job = scheduler.reconcile_job
    if not await job.run():
        raise HTTPException(status.HTTP_409_CONFLICT, "Reconciliation already in progress")
    if job.last_error is not None:
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, "Reconciliation failed")
    awards = job.last_result or []
    return {
        "ok": True,
        "awarded": [{"member_id": a.member_id, "delta": a.delta} for a in awards],
    }
