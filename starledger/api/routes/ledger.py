"""
starledger.api.routes.ledger — Member share / review / balance endpoints
=========================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from starledger.api.deps import get_current_member, get_engine, get_notifier
from starledger.constants import rank_for_stars
from starledger.database.engine import get_session
from starledger.database.models import Currency, SharePlatform
from starledger.engine.events import ReviewEventPayload, ShareEventPayload
from starledger.services import event_log, ledger, review_service
from starledger.services.notifier import ConnectionRegistry

router = APIRouter(prefix="/ledger", tags=["ledger"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class ShareIn(BaseModel):
    share_platform: SharePlatform = SharePlatform.OTHER
    share_url: str | None = None
    proof_url: str | None = None


class ReviewChecklist(BaseModel):
    clear_video_quality: bool
    clear_location: bool
    address_spoken_or_shown: bool
    service_type_clear: bool
    what_makes_special_clear: bool


class ReviewIn(BaseModel):
    business_name: str = Field(min_length=2)
    business_address: str = Field(min_length=5)
    service_type: str = Field(min_length=2)
    what_makes_special: str = Field(min_length=10)
    video_url: str
    checklist: ReviewChecklist


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------
@router.post("/share")
def submit_share(
    body: ShareIn,
    member_id: str = Depends(get_current_member),
    engine: Engine = Depends(get_engine),
):
    """Record a share.  STAR is credited later by the reconciliation job."""
    event = event_log.record_event(engine, ShareEventPayload(
        member_id=member_id,
        platform=body.share_platform.value,
        share_url=body.share_url,
        proof_url=body.proof_url,
    ))
    with get_session(engine) as session:
        pending = event_log.count_unconsumed(session, member_id)
    return {
        "ok": True,
        "event_id": event.id,
        "member_id": member_id,
        "pending_shares": pending,
        "message": "Share recorded. STAR is awarded for every 3 shares.",
    }


@router.post("/review-video")
def submit_review_video(
    body: ReviewIn,
    member_id: str = Depends(get_current_member),
    engine: Engine = Depends(get_engine),
    notifier: ConnectionRegistry = Depends(get_notifier),
):
    review = review_service.submit_review(engine, ReviewEventPayload(
        member_id=member_id,
        business_name=body.business_name,
        business_address=body.business_address,
        service_type=body.service_type,
        what_makes_special=body.what_makes_special,
        video_url=body.video_url,
        checklist=body.checklist.model_dump(),
    ), notifier)
    return {
        "ok": True,
        "review_id": review.id,
        "status": review.status,
        "self_score": review.self_score,
    }


@router.get("/balance")
def get_balance(
    member_id: str = Depends(get_current_member),
    engine: Engine = Depends(get_engine),
):
    balances = ledger.get_balances(engine, member_id)
    with get_session(engine) as session:
        lifetime = ledger.lifetime_stars(session, member_id)
    return {
        "member_id": member_id,
        "balances": balances,
        "lifetime_stars": lifetime,
        "rank": rank_for_stars(lifetime),
    }


@router.get("/transactions/{currency}")
def get_transactions(
    currency: Currency,
    limit: int = 50,
    member_id: str = Depends(get_current_member),
    engine: Engine = Depends(get_engine),
):
    return ledger.list_transactions(engine, member_id, currency, limit=min(limit, 200))
