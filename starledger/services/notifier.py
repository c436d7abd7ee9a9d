"""
starledger.services.notifier — Live-Session Notification Sink
==============================================================

Fire-and-forget delivery of award and reward events to connected
sessions (members watching their balance, admins watching the activity
stream).

The services never talk to sockets directly.  They receive a
:class:`Notifier` and call :func:`notify_member` / :func:`notify_role`,
which swallow and log every failure: a notification can be lost, it can
never undo or fail a ledger write.

:class:`ConnectionRegistry` is the WebSocket-backed implementation.  It
owns connect/disconnect bookkeeping; services only see ``send`` and
``broadcast``.  Because service functions run on worker threads (via
``run_db`` or FastAPI's threadpool), deliveries are scheduled onto the
registry's event loop with ``loop.call_soon_threadsafe`` and never awaited
by the caller.  The registry holds each delivery task until it finishes.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import defaultdict
from typing import Any, Protocol

from starledger.database.models import MemberRole

logger = logging.getLogger(__name__)


class LiveConnection(Protocol):
    """Anything with an async ``send_json`` (Starlette's WebSocket qualifies)."""

    async def send_json(self, data: Any) -> None: ...


class Notifier(Protocol):
    """Capability injected into services for best-effort push."""

    def send(self, member_id: str, payload: dict) -> None: ...

    def broadcast(self, role: str, payload: dict) -> None: ...


class NullNotifier:
    """Drops everything.  Used when no live transport is configured."""

    def send(self, member_id: str, payload: dict) -> None:
        return None

    def broadcast(self, role: str, payload: dict) -> None:
        return None


# ---------------------------------------------------------------------------
# Safe wrappers — the only entry points services use
# ---------------------------------------------------------------------------
def notify_member(notifier: Notifier | None, member_id: str, payload: dict) -> None:
    """Deliver *payload* to *member_id*; log and continue on any error."""
    if notifier is None:
        return
    try:
        notifier.send(member_id, payload)
    except Exception:
        logger.exception(
            "Notification to member %s failed (type=%s)", member_id, payload.get("type"),
        )


def notify_role(notifier: Notifier | None, role: str, payload: dict) -> None:
    """Broadcast *payload* to every session holding *role*; never raises."""
    if notifier is None:
        return
    try:
        notifier.broadcast(role, payload)
    except Exception:
        logger.exception(
            "Broadcast to role %s failed (type=%s)", role, payload.get("type"),
        )


def notify_admins(notifier: Notifier | None, payload: dict) -> None:
    notify_role(notifier, MemberRole.ADMIN.value, payload)


# ---------------------------------------------------------------------------
# WebSocket registry
# ---------------------------------------------------------------------------
class ConnectionRegistry:
    """Thread-safe map of member / role identities to live connections.

    Usage::

        registry = ConnectionRegistry()
        registry.bind_loop(asyncio.get_running_loop())   # on startup

        registry.register("member-1", "user", websocket)
        registry.send("member-1", {"type": "star_award", "delta": 2})
        registry.unregister("member-1", websocket)
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_member: dict[str, set[LiveConnection]] = defaultdict(set)
        self._by_role: dict[str, set[LiveConnection]] = defaultdict(set)
        self._loop: asyncio.AbstractEventLoop | None = None
        # Strong refs to delivery tasks until they finish; touched on the loop only
        self._in_flight: set[asyncio.Task] = set()

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Set the event loop deliveries are scheduled on.  Call once at startup."""
        self._loop = loop

    # -- bookkeeping ------------------------------------------------------
    def register(self, member_id: str, role: str, conn: LiveConnection) -> None:
        with self._lock:
            self._by_member[member_id].add(conn)
            self._by_role[role].add(conn)
        logger.info("Live session opened for %s (role=%s)", member_id, role)

    def unregister(self, member_id: str, conn: LiveConnection) -> None:
        with self._lock:
            self._discard(conn, member_id)
        logger.info("Live session closed for %s", member_id)

    def _discard(self, conn: LiveConnection, member_id: str | None = None) -> None:
        # Caller holds self._lock
        buckets = [self._by_member, self._by_role]
        for bucket in buckets:
            for key in list(bucket):
                if member_id is not None and bucket is self._by_member and key != member_id:
                    continue
                bucket[key].discard(conn)
                if not bucket[key]:
                    del bucket[key]

    def connection_count(self, member_id: str | None = None) -> int:
        with self._lock:
            if member_id is not None:
                return len(self._by_member.get(member_id, ()))
            return sum(len(conns) for conns in self._by_member.values())

    # -- Notifier ---------------------------------------------------------
    def send(self, member_id: str, payload: dict) -> None:
        with self._lock:
            targets = list(self._by_member.get(member_id, ()))
        self._dispatch(targets, payload)

    def broadcast(self, role: str, payload: dict) -> None:
        with self._lock:
            targets = list(self._by_role.get(role, ()))
        self._dispatch(targets, payload)

    def _dispatch(self, targets: list[LiveConnection], payload: dict) -> None:
        if not targets:
            return
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.warning(
                "Cannot deliver %s — no event loop bound", payload.get("type"),
            )
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        for conn in targets:
            if running is loop:
                self._spawn(conn, payload)
            else:
                loop.call_soon_threadsafe(self._spawn, conn, payload)

    def _spawn(self, conn: LiveConnection, payload: dict) -> None:
        task = self._loop.create_task(self._deliver(conn, payload))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    def in_flight(self) -> int:
        """Deliveries scheduled but not yet finished."""
        return len(self._in_flight)

    async def _deliver(self, conn: LiveConnection, payload: dict) -> None:
        try:
            await conn.send_json(payload)
        except Exception:
            logger.warning(
                "Dropping dead live connection after failed %s delivery",
                payload.get("type"), exc_info=True,
            )
            with self._lock:
                self._discard(conn)
