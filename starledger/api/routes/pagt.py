"""
starledger.api.routes.pagt — Contest voting endpoints
======================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from starledger.api.deps import get_current_member, get_engine
from starledger.constants import MAX_VOTES_PER_CAST
from starledger.database.models import VotePayment
from starledger.services import vote_service

router = APIRouter(prefix="/pagt", tags=["pagt"])


class VoteIn(BaseModel):
    contest_id: str = Field(min_length=2)
    contestant_id: str = Field(min_length=2)
    votes: int = Field(default=1, ge=1, le=MAX_VOTES_PER_CAST)
    pay_with: VotePayment = VotePayment.STARS


@router.post("/vote")
def cast_vote(
    body: VoteIn,
    member_id: str = Depends(get_current_member),
    engine: Engine = Depends(get_engine),
):
    result = vote_service.cast_vote(
        engine,
        member_id,
        contest_id=body.contest_id,
        contestant_id=body.contestant_id,
        votes=body.votes,
        pay_with=body.pay_with,
    )
    return {"ok": True, "message": "Vote recorded.", **result}


@router.get("/contests/{contest_id}/tally")
def contest_tally(contest_id: str, engine: Engine = Depends(get_engine)):
    return {"contest_id": contest_id, "tally": vote_service.contest_tally(engine, contest_id)}
