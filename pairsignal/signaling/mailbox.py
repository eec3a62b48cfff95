"""Per-recipient signaling mailbox.

Each recipient has a single slot holding the latest negotiation entry
(offer, answer or end) and a queue of discovery-candidate fragments. Writes
to the slot replace whatever was there; a poll drains both channels at once.

Operations on one recipient are serialised by that recipient's lock; different
recipients never share a lock.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from typing import Any, ClassVar, Deque, Dict, Iterator, List, Optional, Tuple, Union


@dataclass(frozen=True)
class Offer:
    sdp: Any
    sender: str
    timestamp: int

    type: ClassVar[str] = "offer"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "sdp": self.sdp, "from": self.sender, "timestamp": self.timestamp}


@dataclass(frozen=True)
class Answer:
    sdp: Any
    sender: str
    timestamp: int

    type: ClassVar[str] = "answer"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "sdp": self.sdp, "from": self.sender, "timestamp": self.timestamp}


@dataclass(frozen=True)
class End:
    sender: str
    timestamp: int

    type: ClassVar[str] = "end"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "from": self.sender, "timestamp": self.timestamp}


MailboxEntry = Union[Offer, Answer, End]


@dataclass(frozen=True)
class CandidateFragment:
    candidate: Any
    sender: str
    timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        return {"candidate": self.candidate, "from": self.sender, "timestamp": self.timestamp}


@dataclass
class Drained:
    """Everything that was pending for a recipient at the moment of a poll."""

    entry: Optional[MailboxEntry] = None
    candidates: List[CandidateFragment] = field(default_factory=list)

    def __iter__(self):
        return iter((self.entry, self.candidates))

    @property
    def empty(self) -> bool:
        return self.entry is None and not self.candidates

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signal": self.entry.to_dict() if self.entry else None,
            "iceCandidates": [fragment.to_dict() for fragment in self.candidates],
        }


class Mailbox(ABC):
    """Atomic per-recipient mailbox.

    A shared key-value store with per-key atomic read-and-clear can stand in
    for the in-memory implementation in a multi-instance deployment.
    """

    @abstractmethod
    def set_entry(self, recipient: str, entry: MailboxEntry) -> None:
        ...

    @abstractmethod
    def append_candidate(self, recipient: str, fragment: CandidateFragment) -> None:
        ...

    @abstractmethod
    def drain(self, recipient: str) -> Drained:
        ...

    @abstractmethod
    def clear_entry(self, recipient: str) -> None:
        ...

    @abstractmethod
    def clear_candidates(self, recipient: str) -> None:
        ...

    @abstractmethod
    def pending(self, recipient: str) -> Tuple[bool, int]:
        """Return whether an entry is waiting and how many candidates are queued."""

    def close(self) -> None:
        """Release all pending state. Called at shutdown."""


class _KeyLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class InMemoryMailbox(Mailbox):
    """Process-local mailbox guarded by one lock per recipient.

    ``max_candidates`` optionally bounds each candidate queue; when the bound
    is reached the oldest fragment is evicted. ``None`` leaves queues
    unbounded until drained.

    A recipient's lock lives only while someone holds or waits on it, or while
    that recipient still has something pending, so the lock table stays as
    small as the set of recipients with mail.
    """

    def __init__(self, max_candidates: Optional[int] = None) -> None:
        if max_candidates is not None and max_candidates <= 0:
            raise ValueError("max_candidates must be a positive integer")
        self.max_candidates = max_candidates
        self._entries: Dict[str, MailboxEntry] = {}
        self._candidates: Dict[str, Deque[CandidateFragment]] = {}
        self._locks: Dict[str, _KeyLock] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _locked(self, recipient: str) -> Iterator[None]:
        with self._locks_guard:
            key_lock = self._locks.get(recipient)
            if key_lock is None:
                key_lock = self._locks[recipient] = _KeyLock()
            key_lock.users += 1
        try:
            with key_lock.lock:
                yield
        finally:
            with self._locks_guard:
                key_lock.users -= 1
                if (
                    key_lock.users == 0
                    and recipient not in self._entries
                    and recipient not in self._candidates
                    and self._locks.get(recipient) is key_lock
                ):
                    del self._locks[recipient]

    def set_entry(self, recipient: str, entry: MailboxEntry) -> None:
        with self._locked(recipient):
            self._entries[recipient] = entry

    def append_candidate(self, recipient: str, fragment: CandidateFragment) -> None:
        with self._locked(recipient):
            queue = self._candidates.get(recipient)
            if queue is None:
                queue = deque(maxlen=self.max_candidates)
                self._candidates[recipient] = queue
            queue.append(fragment)

    def drain(self, recipient: str) -> Drained:
        with self._locked(recipient):
            entry = self._entries.pop(recipient, None)
            queue = self._candidates.pop(recipient, None)
        return Drained(entry=entry, candidates=list(queue) if queue else [])

    def clear_entry(self, recipient: str) -> None:
        with self._locked(recipient):
            self._entries.pop(recipient, None)

    def clear_candidates(self, recipient: str) -> None:
        with self._locked(recipient):
            self._candidates.pop(recipient, None)

    def pending(self, recipient: str) -> Tuple[bool, int]:
        with self._locked(recipient):
            queue = self._candidates.get(recipient)
            return recipient in self._entries, len(queue) if queue else 0

    def close(self) -> None:
        with self._locks_guard:
            self._entries.clear()
            self._candidates.clear()
            self._locks.clear()


__all__ = [
    "Answer",
    "CandidateFragment",
    "Drained",
    "End",
    "InMemoryMailbox",
    "Mailbox",
    "MailboxEntry",
    "Offer",
]
