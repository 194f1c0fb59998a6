"""
MarketSync Backend — Optimistic Local Mirror
==============================================

What:  Client-held copy of a remote id set (followed providers, for example)
       that changes before the remote write resolves.
How:   Every local change is tagged PENDING and returns a MirrorChange token.
       When the remote acknowledgment arrives, `reconcile(change, ok)` is the
       only place the entry moves on: CONFIRMED on success, or back to its
       previous membership and ROLLED_BACK on failure.

Authoritative reads:
    reset(remote_values) replaces every settled entry with the remote truth.
    Entries still PENDING keep their local value; their acknowledgment is
    still on its way and will settle them.

State Machine (per key):
    (absent) --apply--> PENDING --reconcile(ok)----> CONFIRMED
                           └----reconcile(failed)--> ROLLED_BACK
    CONFIRMED / ROLLED_BACK --apply--> PENDING
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)


class MirrorState(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True)
class MirrorChange:
    """Token for one optimistic change, handed back to `reconcile`."""

    key: str
    present: bool
    previous: bool
    sequence: int


class OptimisticMirror:
    """Ordered id set with per-entry pending/confirmed/rolled-back tags."""

    def __init__(self, initial: Optional[Iterable[str]] = None):
        # dict keeps insertion order, so values() reads like the remote array
        self._present: Dict[str, bool] = {}
        self._states: Dict[str, MirrorState] = {}
        self._latest: Dict[str, int] = {}
        self._sequence = 0
        for key in initial or ():
            self._present[key] = True
            self._states[key] = MirrorState.CONFIRMED

    def apply(self, key: str, present: bool) -> MirrorChange:
        """Set membership locally ahead of the remote write."""
        self._sequence += 1
        change = MirrorChange(
            key=key,
            present=present,
            previous=self._present.get(key, False),
            sequence=self._sequence,
        )
        self._set(key, present)
        self._states[key] = MirrorState.PENDING
        self._latest[key] = change.sequence
        return change

    def reconcile(self, change: MirrorChange, ok: bool) -> MirrorState:
        """
        Settle an optimistic change once the remote write resolves.

        A superseded change (a newer apply() on the same key happened since)
        is ignored; the newer change's own acknowledgment settles the entry.
        """
        if self._latest.get(change.key) != change.sequence:
            logger.debug("Ignoring superseded acknowledgment for %s", change.key)
            return self._states.get(change.key, MirrorState.CONFIRMED)

        if ok:
            state = MirrorState.CONFIRMED
        else:
            self._set(change.key, change.previous)
            state = MirrorState.ROLLED_BACK
            logger.info("Rolled back optimistic change for %s", change.key)

        self._states[change.key] = state
        del self._latest[change.key]
        return state

    def reset(self, remote_values: Iterable[str]) -> None:
        """Adopt the remote value for every entry that is not pending."""
        remote = list(remote_values)
        pending = {k: self._present.get(k, False) for k, s in self._states.items() if s == MirrorState.PENDING}

        self._present = {}
        self._states = {}
        for key in remote:
            self._present[key] = True
            self._states[key] = MirrorState.CONFIRMED
        for key, present in pending.items():
            self._set(key, present)
            self._states[key] = MirrorState.PENDING

    def _set(self, key: str, present: bool) -> None:
        if present:
            self._present[key] = True
        else:
            self._present.pop(key, None)

    def state(self, key: str) -> Optional[MirrorState]:
        return self._states.get(key)

    def is_pending(self, key: str) -> bool:
        return self._states.get(key) == MirrorState.PENDING

    def values(self) -> List[str]:
        return list(self._present)

    def __contains__(self, key: object) -> bool:
        return key in self._present

    def __len__(self) -> int:
        return len(self._present)
