"""
starledger.engine.conversion — Share → STAR Arithmetic
=======================================================

Pure calculation, no DB I/O.  Given how many unconsumed events a member
has, decide how many credits they are owed and how many events those
credits use up.  Partial batches are never credited and never rounded up;
the remainder stays unconsumed for a later pass.
"""

from __future__ import annotations

from dataclasses import dataclass

__all__ = ["ConversionResult", "compute_conversion"]


@dataclass(frozen=True, slots=True)
class ConversionResult:
    """Output of :func:`compute_conversion`."""

    credits: int
    events_to_consume: int
    remainder: int

    @property
    def eligible(self) -> bool:
        return self.credits > 0


def compute_conversion(unconsumed_count: int, rate: int = 3) -> ConversionResult:
    """Convert *unconsumed_count* events at *rate* events per credit.

    >>> compute_conversion(7)
    ConversionResult(credits=2, events_to_consume=6, remainder=1)
    >>> compute_conversion(2).eligible
    False
    """
    if rate <= 0:
        raise ValueError(f"rate must be positive, got {rate}")
    if unconsumed_count < 0:
        raise ValueError(f"unconsumed_count cannot be negative, got {unconsumed_count}")

    credits = unconsumed_count // rate
    consume = credits * rate
    return ConversionResult(
        credits=credits,
        events_to_consume=consume,
        remainder=unconsumed_count - consume,
    )
