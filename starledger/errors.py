"""
starledger.errors — Service-level exceptions
=============================================

Raised by the service layer before any write happens.  The HTTP layer
maps :class:`ValidationError` to 400 and :class:`NotFoundError` to 404.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all StarLedger service errors."""


class ValidationError(LedgerError):
    """Malformed input, insufficient funds, or an illegal state transition."""


class NotFoundError(ValidationError):
    """The referenced member or review does not exist.

    A kind of validation failure; the HTTP layer answers 404 instead of 400.
    """
