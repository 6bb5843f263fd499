"""
Client-side payment reconciliation.

After a session is assigned the client runs three activities at once:
a countdown derived from the TTL, a push listener (server-sent events) and
a poll loop with jitter that covers for a silently dropped push channel.
Whichever signal first reports a terminal status wins; a SuccessGuard makes
sure the success handler runs once even when push and poll race.

All three activities belong to a PaymentWatcher and are cancelled together
on every exit path:

    async with BillingClient(base_url, token) as api:
        session = await api.create_session("base")
        async with PaymentWatcher(api, session, on_paid=show_toast) as watcher:
            result = await watcher.wait()
"""
import asyncio
import inspect
import json
import logging
import random
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

SESSION_TTL_SECONDS = 600
POLL_INTERVAL_SECONDS = 3.0
POLL_MAX_JITTER_SECONDS = 1.5

OUTCOME_PAID = "paid"
OUTCOME_EXPIRED = "expired"
OUTCOME_CANCELLED = "cancelled"
_TERMINAL = {OUTCOME_PAID, OUTCOME_EXPIRED, OUTCOME_CANCELLED}


class BillingClientError(Exception):
    def __init__(self, status_code: int, code: str, message: str = ""):
        super().__init__(f"{status_code} {code}: {message}".strip())
        self.status_code = status_code
        self.code = code
        self.message = message

    @property
    def retryable(self) -> bool:
        return self.status_code in (429, 503)


class PushUnavailable(Exception):
    """Server has no push channel for this session; polling covers it."""


class BillingClient:
    """Thin async wrapper over the /billing API."""

    def __init__(self, base_url: str, token: str, *, timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "BillingClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    @staticmethod
    def _raise_for(resp: httpx.Response) -> None:
        if resp.status_code < 400:
            return
        try:
            body = resp.json()
        except ValueError:
            body = {}
        raise BillingClientError(resp.status_code, body.get("error", "http_error"), body.get("message", ""))

    async def create_session(self, tier: str, mobile: bool = False) -> Dict[str, Any]:
        resp = await self._http.post("/billing/sessions", json={"tier": tier, "mobile": mobile})
        self._raise_for(resp)
        return resp.json()

    async def get_session(self, session_id: str) -> Dict[str, Any]:
        resp = await self._http.get(f"/billing/sessions/{session_id}")
        self._raise_for(resp)
        return resp.json()

    async def latest_pending_session(self) -> Optional[Dict[str, Any]]:
        resp = await self._http.get("/billing/sessions/latest-pending")
        if resp.status_code == 404:
            return None
        self._raise_for(resp)
        return resp.json()

    async def stream_events(self, session_id: str) -> AsyncIterator[Dict[str, Any]]:
        timeout = httpx.Timeout(10.0, read=None)
        async with self._http.stream("GET", f"/billing/sessions/{session_id}/events", timeout=timeout) as resp:
            if resp.status_code == 503:
                raise PushUnavailable(session_id)
            if resp.status_code >= 400:
                await resp.aread()
                self._raise_for(resp)
            async for line in resp.aiter_lines():
                if not line.startswith("data:"):
                    continue
                try:
                    yield json.loads(line[len("data:"):].strip())
                except ValueError:
                    logger.debug("Ignoring malformed event line for session %s", session_id)


class SuccessGuard:
    """Single-assignment check-and-set: only the first acquire() succeeds."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._winner: Optional[str] = None

    def acquire(self, source: str) -> bool:
        with self._lock:
            if self._winner is not None:
                return False
            self._winner = source
            return True

    @property
    def winner(self) -> Optional[str]:
        return self._winner


@dataclass
class WatchResult:
    outcome: str
    source: str
    session: Dict[str, Any] = field(default_factory=dict)

    @property
    def paid(self) -> bool:
        return self.outcome == OUTCOME_PAID


async def _call(callback: Optional[Callable], *args) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class PaymentWatcher:
    """Owns the countdown, push listener and poll loop for one session."""

    def __init__(
        self,
        client: BillingClient,
        session: Dict[str, Any],
        *,
        on_paid: Optional[Callable] = None,
        on_expired: Optional[Callable] = None,
        on_tick: Optional[Callable[[int], Any]] = None,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        max_jitter: float = POLL_MAX_JITTER_SECONDS,
        tick_seconds: float = 1.0,
        use_push: bool = True,
        rng: Optional[random.Random] = None,
    ):
        self.client = client
        self.session = session
        self.session_id = session["session_id"]
        self.guard = SuccessGuard()
        self._on_paid = on_paid
        self._on_expired = on_expired
        self._on_tick = on_tick
        self._poll_interval = poll_interval + (rng or random).uniform(0, max_jitter)
        self._tick_seconds = tick_seconds
        self._use_push = use_push
        self._remaining = int(session.get("remaining_seconds", session.get("ttl_seconds", SESSION_TTL_SECONDS)))
        self._tasks: List[asyncio.Task] = []
        self._done: Optional[asyncio.Future] = None

    async def __aenter__(self) -> "PaymentWatcher":
        self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    def start(self) -> None:
        if self._tasks:
            return
        self._done = asyncio.get_running_loop().create_future()
        self._tasks.append(asyncio.create_task(self._countdown(), name=f"countdown:{self.session_id}"))
        self._tasks.append(asyncio.create_task(self._poll(), name=f"poll:{self.session_id}"))
        if self._use_push:
            self._tasks.append(asyncio.create_task(self._push(), name=f"push:{self.session_id}"))

    async def wait(self) -> WatchResult:
        if self._done is None:
            self.start()
        try:
            return await asyncio.shield(self._done)
        finally:
            await self.close()

    async def close(self) -> None:
        tasks, self._tasks = self._tasks, []
        current = asyncio.current_task()
        for task in tasks:
            if task is not current:
                task.cancel()
        await asyncio.gather(*(t for t in tasks if t is not current), return_exceptions=True)
        if self._done is not None and not self._done.done():
            self._done.set_result(WatchResult(OUTCOME_CANCELLED, "close", self.session))

    async def _resolve(self, outcome: str, source: str, payload: Dict[str, Any]) -> None:
        if not self.guard.acquire(source):
            return
        merged = {**self.session, **(payload or {})}
        callback = self._on_paid if outcome == OUTCOME_PAID else self._on_expired
        try:
            await _call(callback, merged)
        except Exception as exc:
            # The guard is spent; wait() must still see an outcome
            logger.exception("%s handler for session %s failed", outcome, self.session_id)
            if not self._finished():
                self._done.set_exception(exc)
            return
        if not self._finished():
            self._done.set_result(WatchResult(outcome, source, merged))

    async def _observe(self, payload: Dict[str, Any], source: str) -> None:
        status = (payload or {}).get("status")
        if status in _TERMINAL:
            await self._resolve(status, source, payload)

    def _finished(self) -> bool:
        return self._done is not None and self._done.done()

    async def _countdown(self) -> None:
        remaining = self._remaining
        while remaining > 0 and not self._finished():
            await _call(self._on_tick, remaining)
            await asyncio.sleep(self._tick_seconds)
            remaining -= 1
        if self._finished():
            return
        await _call(self._on_tick, 0)
        # A payment can land just before the deadline while push is down
        final = await self._fetch()
        if final is not None:
            await self._observe(final, "countdown")
        if not self._finished():
            await self._resolve(OUTCOME_EXPIRED, "countdown", {"status": OUTCOME_EXPIRED})

    async def _fetch(self) -> Optional[Dict[str, Any]]:
        try:
            return await self.client.get_session(self.session_id)
        except (httpx.HTTPError, BillingClientError) as exc:
            logger.warning("Polling session %s failed: %s", self.session_id, exc)
            return None

    async def _poll(self) -> None:
        while not self._finished():
            await asyncio.sleep(self._poll_interval)
            data = await self._fetch()
            if data is not None:
                await self._observe(data, "poll")

    async def _push(self) -> None:
        try:
            async for message in self.client.stream_events(self.session_id):
                await self._observe(message, "push")
                if self._finished():
                    return
        except PushUnavailable:
            logger.info("Push unavailable for session %s; polling only", self.session_id)
        except (httpx.HTTPError, BillingClientError) as exc:
            logger.warning("Push channel for session %s dropped: %s", self.session_id, exc)


def _parse_ts(value: str) -> datetime:
    dt = datetime.fromisoformat(value)
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


async def recover_session(client: BillingClient, now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
    """
    Reload recovery: the caller's latest pending session with its remaining
    TTL recomputed from created_at, or None if nothing is left to wait for.
    """
    data = await client.latest_pending_session()
    if not data or data.get("status") != "pending":
        return None
    now = now or datetime.now(timezone.utc)
    ttl = int(data.get("ttl_seconds", SESSION_TTL_SECONDS))
    elapsed = (now - _parse_ts(data["created_at"])).total_seconds()
    remaining = max(0, int(ttl - elapsed))
    if remaining <= 0:
        return None
    return {**data, "remaining_seconds": remaining}


async def run_checkout(client: BillingClient, tier: str, *, mobile: bool = False, **watcher_kwargs) -> WatchResult:
    """Assign a session (or resume the pending one) and wait for its outcome."""
    session = await recover_session(client)
    if session is None:
        session = await client.create_session(tier, mobile=mobile)
    async with PaymentWatcher(client, session, **watcher_kwargs) as watcher:
        return await watcher.wait()
