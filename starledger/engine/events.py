"""
starledger.engine.events — Tagged Event Payloads
=================================================

Every qualifying member action is normalized into one of these frozen
payloads before it reaches the event log.  The shared base carries the
member identity, the submission time and the consumption state; each
subclass adds its type-specific fields.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

from starledger.database.models import SharePlatform
from starledger.errors import ValidationError

__all__ = ["EventPayload", "ReviewEventPayload", "ShareEventPayload", "REVIEW_CHECKLIST_KEYS"]

REVIEW_CHECKLIST_KEYS: tuple[str, ...] = (
    "clear_video_quality",
    "clear_location",
    "address_spoken_or_shown",
    "service_type_clear",
    "what_makes_special_clear",
)


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class EventPayload:
    """Base envelope shared by all raw events."""

    member_id: str
    created_at: datetime = field(default_factory=_now)
    consumed: bool = False

    kind = "event"

    def validate(self) -> None:
        if not self.member_id or len(self.member_id) < 2:
            raise ValidationError("member_id must be at least 2 characters")
        if self.consumed:
            # Only mark_consumed flips the flag, inside an award transaction
            raise ValidationError("new events must start unconsumed")


@dataclass(frozen=True, slots=True)
class ShareEventPayload(EventPayload):
    """A social share.  Three of these convert into one STAR."""

    platform: str = SharePlatform.OTHER.value
    share_url: str | None = None
    proof_url: str | None = None

    kind = "share"

    def validate(self) -> None:
        EventPayload.validate(self)
        if self.platform not in {p.value for p in SharePlatform}:
            raise ValidationError(f"Unknown share platform: {self.platform!r}")
        for name in ("share_url", "proof_url"):
            url = getattr(self, name)
            if url is not None and not url.startswith(("http://", "https://")):
                raise ValidationError(f"{name} must be an http(s) URL")


@dataclass(frozen=True, slots=True)
class ReviewEventPayload(EventPayload):
    """A video review of a local business, pending admin approval."""

    business_name: str = ""
    business_address: str = ""
    service_type: str = ""
    what_makes_special: str = ""
    video_url: str = ""
    checklist: dict[str, bool] = field(default_factory=dict)

    kind = "review"

    @property
    def self_score(self) -> int:
        """Number of checklist items the member ticked (0–5)."""
        return sum(1 for key in REVIEW_CHECKLIST_KEYS if self.checklist.get(key))

    def validate(self) -> None:
        EventPayload.validate(self)
        minimums = {
            "business_name": 2,
            "business_address": 5,
            "service_type": 2,
            "what_makes_special": 10,
        }
        for name, minimum in minimums.items():
            if len(getattr(self, name).strip()) < minimum:
                raise ValidationError(f"{name} must be at least {minimum} characters")
        if not self.video_url.startswith(("http://", "https://")):
            raise ValidationError("video_url must be an http(s) URL")
