"""
auth/governor.py -- Login attempt governor (per-identity fixed window).

The governor sits in front of credential verification and decides ADMIT or
DENY for each login attempt from a client identity (e.g. "ip:203.0.113.7").
It knows nothing about whether the credentials are valid: the login route
must call record_attempt() BEFORE authenticate_user(), so a denial looks the
same for an unknown account, a wrong password, and a correct one.

Window rules (window = 15 min, limit = 10 by default):
  - no window, or the window is at least `window_seconds` old:
        open a fresh window with count=1 -> ADMIT
  - count < limit:  count += 1 -> ADMIT
  - otherwise:      DENY, count unchanged, retry_after = window - age

Concurrency:
  Lock-per-key table. `_registry_lock` is held only long enough to fetch or
  insert a `_Slot` in the dict; the read-check-increment itself runs under the
  slot's own lock. Two attempts from the same identity serialize; attempts
  from different identities never wait on each other's window update.

  Eviction (reset() and sweep()) marks a slot `dead` while holding its lock
  and removes it from the dict under the registry lock. record_attempt()
  re-checks `dead` after acquiring the slot lock and retries on a fresh slot,
  so an attempt can never land in a window that is being thrown away.

DENY is a normal return value, never an exception. The HTTP layer turns it
into RateLimited (see api/routes/v1/auth.py).

Layer rule: no imports from api/ or core/. Configuration is passed in.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger("caregate.governor")


class Decision(str, Enum):
    ADMIT = "ADMIT"
    DENY = "DENY"


@dataclass(frozen=True)
class AttemptWindow:
    """Snapshot of one identity's window. `window_start` is in clock seconds."""

    count: int
    window_start: float


@dataclass(frozen=True)
class AttemptResult:
    """Outcome of record_attempt().

    retry_after is 0.0 for ADMIT. For DENY it is the number of seconds until
    the current window expires, which the caller reports as Retry-After.
    """

    decision: Decision
    count: int
    remaining: int
    retry_after: float = 0.0

    @property
    def admitted(self) -> bool:
        return self.decision is Decision.ADMIT


class RateLimited(Exception):
    """Raised by the HTTP layer when the governor denies a login attempt.

    Carries only the retry delay. The message is the same for every cause so
    a client cannot tell an unknown account from a throttled one.
    """

    message = "Too many login attempts. Please try again later."

    def __init__(self, retry_after: float) -> None:
        super().__init__(self.message)
        self.retry_after = retry_after


class _Slot:
    __slots__ = ("lock", "count", "window_start", "dead")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.count = 0
        self.window_start = 0.0
        self.dead = False


class AttemptGovernor:
    """Per-identity login attempt counter.

    Usage:
        governor = AttemptGovernor(window_seconds=900, max_attempts=10)
        result = governor.record_attempt("ip:203.0.113.7")
        if not result.admitted:
            raise RateLimited(result.retry_after)

    clock must be monotonic; tests inject a fake one.
    """

    def __init__(
        self,
        window_seconds: float = 900.0,
        max_attempts: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        if max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        self.window_seconds = float(window_seconds)
        self.max_attempts = max_attempts
        self._clock = clock
        self._slots: dict[str, _Slot] = {}
        self._registry_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def record_attempt(self, identity: str) -> AttemptResult:
        """Count one attempt for `identity` and return ADMIT or DENY."""
        _check_identity(identity)
        while True:
            slot = self._slot_for(identity)
            with slot.lock:
                if slot.dead:
                    # Evicted between lookup and lock; take the replacement.
                    continue
                return self._apply(identity, slot)

    def reset(self, identity: str) -> None:
        """Forget the identity's window (e.g. after a successful login)."""
        _check_identity(identity)
        with self._registry_lock:
            slot = self._slots.get(identity)
        if slot is None:
            return
        with slot.lock:
            if slot.dead:
                return
            slot.dead = True
            with self._registry_lock:
                if self._slots.get(identity) is slot:
                    del self._slots[identity]

    def sweep(self) -> int:
        """Evict every expired window. Returns the number of identities removed.

        Slots whose lock is busy are skipped; an in-flight attempt on that
        identity is about to refresh or reuse the window anyway.
        """
        now = self._clock()
        with self._registry_lock:
            candidates = list(self._slots.items())
        removed = 0
        for identity, slot in candidates:
            if not slot.lock.acquire(blocking=False):
                continue
            try:
                if slot.dead or now - slot.window_start < self.window_seconds:
                    continue
                slot.dead = True
                with self._registry_lock:
                    if self._slots.get(identity) is slot:
                        del self._slots[identity]
                removed += 1
            finally:
                slot.lock.release()
        if removed:
            logger.debug("Swept %d expired login windows", removed)
        return removed

    def peek(self, identity: str) -> AttemptWindow | None:
        """Return a snapshot of the identity's window without counting an attempt."""
        with self._registry_lock:
            slot = self._slots.get(identity)
        if slot is None:
            return None
        with slot.lock:
            if slot.dead:
                return None
            return AttemptWindow(count=slot.count, window_start=slot.window_start)

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._slots)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _slot_for(self, identity: str) -> _Slot:
        with self._registry_lock:
            slot = self._slots.get(identity)
            if slot is None:
                slot = _Slot()
                self._slots[identity] = slot
            return slot

    def _apply(self, identity: str, slot: _Slot) -> AttemptResult:
        """Read-check-increment. Caller holds slot.lock."""
        now = self._clock()
        age = now - slot.window_start
        if slot.count == 0 or age >= self.window_seconds:
            slot.count = 1
            slot.window_start = now
            return AttemptResult(Decision.ADMIT, count=1, remaining=self.max_attempts - 1)

        if slot.count < self.max_attempts:
            slot.count += 1
            return AttemptResult(Decision.ADMIT, count=slot.count, remaining=self.max_attempts - slot.count)

        retry_after = max(self.window_seconds - age, 0.0)
        logger.warning("Login attempts throttled for %s (retry in %.0fs)", identity, retry_after)
        return AttemptResult(Decision.DENY, count=slot.count, remaining=0, retry_after=retry_after)


def _check_identity(identity: str) -> None:
    if not isinstance(identity, str) or not identity:
        raise ValueError("identity must be a non-empty string")
