"""
Session nonce registry.

A nonce is issued per aggregation attempt and bound to the caller's
self_nullifier. Prove/execute requests must present a live nonce bound to the
same nullifier; verification consumes it, so an aggregated proof can be
accepted at most once per session.

Storage: in-memory dict (restart-loss accepted; a restart only invalidates
sessions in flight).
"""

from __future__ import annotations

import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict

from aggregation.errors import AggregationError

SP1_SCOPE = "sp1"
NONCE_BYTES = 32


class NonceError(AggregationError):
    default_code = "UNKNOWN_NONCE"


@dataclass(frozen=True)
class NonceRecord:
    session_nonce: str
    scope: str
    self_nullifier: str
    issued_at: float
    expires_at: float


class NonceRegistry:
    def __init__(self, ttl_s: float = 900.0, clock: Callable[[], float] = time.monotonic):
        if ttl_s <= 0:
            raise ValueError("ttl_s must be positive")
        self.ttl_s = ttl_s
        self._clock = clock
        self._records: Dict[str, NonceRecord] = {}
        self._lock = threading.Lock()

    def issue(self, self_nullifier: str, scope: str = SP1_SCOPE) -> NonceRecord:
        if not self_nullifier:
            raise NonceError("cannot issue a session nonce without a self_nullifier", "EMPTY_NULLIFIER")
        now = self._clock()
        record = NonceRecord(
            session_nonce=secrets.token_hex(NONCE_BYTES),
            scope=scope,
            self_nullifier=self_nullifier,
            issued_at=now,
            expires_at=now + self.ttl_s,
        )
        with self._lock:
            self._purge_expired(now)
            self._records[record.session_nonce] = record
        return record

    def check(self, session_nonce: str, self_nullifier: str, scope: str = SP1_SCOPE) -> NonceRecord:
        """Return the live record for ``session_nonce`` without consuming it."""
        with self._lock:
            return self._lookup(session_nonce, self_nullifier, scope)

    def consume(self, session_nonce: str, self_nullifier: str, scope: str = SP1_SCOPE) -> NonceRecord:
        """Atomically validate and remove ``session_nonce``."""
        with self._lock:
            record = self._lookup(session_nonce, self_nullifier, scope)
            del self._records[session_nonce]
            return record

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def _lookup(self, session_nonce: str, self_nullifier: str, scope: str) -> NonceRecord:
        record = self._records.get(session_nonce)
        if record is None or record.scope != scope:
            raise NonceError("unknown or already used session nonce")
        if record.expires_at <= self._clock():
            del self._records[session_nonce]
            raise NonceError("session nonce expired", "EXPIRED_NONCE")
        if record.self_nullifier != self_nullifier:
            raise NonceError("session nonce is bound to a different self_nullifier", "NONCE_NULLIFIER_MISMATCH")
        return record

    def _purge_expired(self, now: float) -> None:
        expired = [nonce for nonce, record in self._records.items() if record.expires_at <= now]
        for nonce in expired:
            del self._records[nonce]
