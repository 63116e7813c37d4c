"""
Pending-operation confirmation machine.

At most one pending operation per requester, held in process memory (lost on
restart; it is only unconfirmed intent). Signals for the same requester are
serialized by a lock from a fixed striped table. The entry is removed under
the lock before the executor runs, so a confirm executes at most once, and
the executor's network calls happen outside the lock.

  none -> awaiting_confirmation -> executing -> none
                                -> cancelled -> none
                                -> expired   -> none   (TTL, checked lazily)
"""
import re
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from claimlink.observability.logging import log
from claimlink.settings import settings
from claimlink.store.models import PendingOperation, SendPlan
from claimlink.utils.time import now_ms

DIRECT_SEND = "direct_send"
CLAIM_LINK_SEND = "claim_link_send"
SMALL_AMOUNT_WARNING = "small_amount_warning"

CONFIRM = "confirm"
CANCEL = "cancel"
UNRECOGNIZED = "unrecognized"

# Outcomes of resolve()
EXECUTED = "executed"
CANCELLED = "cancelled"
REPROPOSED = "reproposed"
REPROMPT = "reprompt"
NOTHING_TO_CONFIRM = "nothing_to_confirm"

LOCK_STRIPES = 64

CONFIRM_PATTERNS = [
    re.compile(r"^(yes|y|confirm|ok|sure|proceed)$", re.IGNORECASE),
    re.compile(r"^(send|go|execute|submit)$", re.IGNORECASE),
    re.compile("\U0001F44D"),  # thumbs up, any skin tone
]
CANCEL_PATTERNS = [
    re.compile(r"^(no|n|cancel|stop|abort|nevermind)$", re.IGNORECASE),
    re.compile(r"^(don't|dont|do not) send$", re.IGNORECASE),
    re.compile("\U0001F44E"),  # thumbs down
]


def classify_signal(text: Optional[str] = None, reaction: Optional[str] = None) -> str:
    """A reaction glyph wins over text when both are present."""
    for raw in (reaction, text):
        s = (raw or "").strip()
        if not s:
            continue
        if any(p.search(s) for p in CONFIRM_PATTERNS):
            return CONFIRM
        if any(p.search(s) for p in CANCEL_PATTERNS):
            return CANCEL
    return UNRECOGNIZED


@dataclass
class Resolution:
    outcome: str
    operation: Optional[PendingOperation] = None
    result: Any = None


class ConfirmationMachine:
    def __init__(self, ttl_sec: int = 0, clock: Callable[[], int] = now_ms):
        self.ttl_ms = int(ttl_sec or settings.PENDING_OP_TTL_SEC) * 1000
        self.clock = clock
        self._pending: Dict[str, PendingOperation] = {}
        # Fixed size; requesters share locks by hash
        self._locks: List[threading.Lock] = [threading.Lock() for _ in range(LOCK_STRIPES)]

    def _lock_for(self, requester_id: str) -> threading.Lock:
        return self._locks[hash(requester_id) % len(self._locks)]

    def _expired(self, op: PendingOperation) -> bool:
        return self.clock() - op.createdAt >= self.ttl_ms

    def _put(self, requester_id: str, kind: str, payload: SendPlan) -> PendingOperation:
        op = PendingOperation(requesterId=requester_id, kind=kind, payload=payload, createdAt=self.clock())
        replaced = self._pending.get(requester_id)
        self._pending[requester_id] = op
        log(event="pending_op_proposed", requesterId=requester_id, kind=kind,
            amount=str(payload.amount), replaced=(replaced.kind if replaced else None))
        return op

    def propose(self, requester_id: str, kind: str, payload: SendPlan) -> PendingOperation:
        """Overwrites any existing pending operation for the requester."""
        with self._lock_for(requester_id):
            return self._put(requester_id, kind, payload)

    def peek(self, requester_id: str) -> Optional[PendingOperation]:
        with self._lock_for(requester_id):
            op = self._pending.get(requester_id)
            if op is not None and self._expired(op):
                self._pending.pop(requester_id, None)
                log(event="pending_op_expired", requesterId=requester_id, kind=op.kind)
                return None
            return op

    def has_pending(self, requester_id: str) -> bool:
        return self.peek(requester_id) is not None

    def resolve(self, requester_id: str, signal: str,
                executor: Callable[[PendingOperation], Any]) -> Resolution:
        with self._lock_for(requester_id):
            op = self._pending.get(requester_id)
            if op is None:
                return Resolution(NOTHING_TO_CONFIRM)
            if self._expired(op):
                self._pending.pop(requester_id, None)
                log(event="pending_op_expired", requesterId=requester_id, kind=op.kind)
                return Resolution(NOTHING_TO_CONFIRM)

            if signal == UNRECOGNIZED:
                return Resolution(REPROMPT, op)

            self._pending.pop(requester_id, None)
            if signal == CANCEL:
                log(event="pending_op_cancelled", requesterId=requester_id, kind=op.kind)
                return Resolution(CANCELLED, op)

            if op.kind == SMALL_AMOUNT_WARNING:
                # Two-step confirmation: the warning accepted, now confirm the real send
                nxt = self._put(requester_id, CLAIM_LINK_SEND, op.payload)
                return Resolution(REPROPOSED, nxt)

        log(event="pending_op_confirmed", requesterId=requester_id, kind=op.kind)
        return Resolution(EXECUTED, op, executor(op))

    def expire_stale(self) -> int:
        """Drop every expired entry; for an active timer. Returns the number dropped."""
        requesters = list(self._pending)
        dropped = 0
        for requester_id in requesters:
            with self._lock_for(requester_id):
                op = self._pending.get(requester_id)
                if op is not None and self._expired(op):
                    self._pending.pop(requester_id, None)
                    dropped += 1
        if dropped:
            log(event="pending_ops_expired", count=dropped)
        return dropped
