"""
starledger.api.routes.actions — Fitness / study / language / AI intake
=======================================================================

Each endpoint records the underlying action and grants its reward rule in
one transaction (see :func:`reward_service.record_activity`).
"""

from __future__ import annotations

import enum
from typing import Any, Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from starledger.api.deps import get_current_member, get_engine, get_notifier
from starledger.services import reward_service
from starledger.services.notifier import ConnectionRegistry

router = APIRouter(prefix="/actions", tags=["actions"])


class FitnessIn(BaseModel):
    kind: Literal["workout", "water"]
    details: dict[str, Any] = Field(default_factory=dict)


class ActivityIn(BaseModel):
    details: dict[str, Any] = Field(default_factory=dict)


class MetricIn(BaseModel):
    score: float = Field(allow_inf_nan=False)
    metadata: dict[str, Any] = Field(default_factory=dict)


class StudyTrigger(enum.StrEnum):
    JOURNAL = "journal"
    SHARE = "share"


def _reward_response(result: reward_service.RewardResult) -> dict:
    return {"ok": True, "reward": result.as_dict()}


@router.post("/fitness")
def log_fitness(
    body: FitnessIn,
    member_id: str = Depends(get_current_member),
    engine: Engine = Depends(get_engine),
    notifier: ConnectionRegistry = Depends(get_notifier),
):
    result = reward_service.record_activity(
        engine, member_id, "fitness", body.kind, body.details, notifier,
    )
    return _reward_response(result)


@router.post("/study/{trigger}")
def log_study(
    trigger: StudyTrigger,
    body: ActivityIn,
    member_id: str = Depends(get_current_member),
    engine: Engine = Depends(get_engine),
    notifier: ConnectionRegistry = Depends(get_notifier),
):
    result = reward_service.record_activity(
        engine, member_id, "study", trigger.value, body.details, notifier,
    )
    return _reward_response(result)


@router.post("/language")
def log_language(
    body: ActivityIn,
    member_id: str = Depends(get_current_member),
    engine: Engine = Depends(get_engine),
    notifier: ConnectionRegistry = Depends(get_notifier),
):
    result = reward_service.record_activity(
        engine, member_id, "language", "practice", body.details, notifier,
    )
    return _reward_response(result)


@router.post("/ai/{metric}")
def log_ai_metric(
    metric: str,
    body: MetricIn,
    member_id: str = Depends(get_current_member),
    engine: Engine = Depends(get_engine),
    notifier: ConnectionRegistry = Depends(get_notifier),
):
    outcome = reward_service.record_ai_metric(
        engine, member_id, metric, body.score, body.metadata, notifier,
    )
    return {"ok": True, **outcome.as_dict()}
