"""Presence tracking for paired peers.

Online and typing state are stored as sticky flags plus timestamps. Whether a
peer is *currently* online or typing is derived at read time from those
timestamps and the current clock; nothing ever sweeps stale state.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from . import config
from .accounts import AccountStore, PresenceRecord
from .errors import NotFound
from .pairing import PairingDirectory

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def is_recently_active(
    record: PresenceRecord,
    now: float,
    window_s: float = config.ONLINE_WINDOW_S,
) -> bool:
    """Return ``True`` if the sticky online flag is set and activity is fresh."""

    return bool(record.is_online) and (now - record.last_active_at) < window_s


def is_typing_now(
    record: PresenceRecord,
    now: float,
    window_s: float = config.TYPING_WINDOW_S,
) -> bool:
    """Return ``True`` if the typing flag is set and was raised within the window."""

    if not record.is_typing or record.typing_at is None:
        return False
    return (now - record.typing_at) < window_s


def _isoformat(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


class PresenceTracker:
    """Writes presence activity and reads the partner's derived presence."""

    def __init__(
        self,
        accounts: AccountStore,
        directory: PairingDirectory,
        clock: Clock = time.time,
        online_window_s: float = config.ONLINE_WINDOW_S,
        typing_window_s: float = config.TYPING_WINDOW_S,
    ) -> None:
        self.accounts = accounts
        self.directory = directory
        self.clock = clock
        self.online_window_s = online_window_s
        self.typing_window_s = typing_window_s

    def _upsert(self, identity: str, **fields: Any) -> Optional[PresenceRecord]:
        # Activity from an identity without an account record is ignored.
        try:
            return self.accounts.update_presence(identity, **fields)
        except NotFound:
            logger.debug("Ignoring presence update for unknown identity %s", identity)
            return None

    def touch_activity(self, identity: str) -> Optional[PresenceRecord]:
        return self._upsert(identity, last_active_at=self.clock(), is_online=True)

    def set_offline(self, identity: str) -> Optional[PresenceRecord]:
        return self._upsert(identity, is_online=False)

    def set_typing(self, identity: str, typing: bool) -> Optional[PresenceRecord]:
        typing = typing is True
        return self._upsert(identity, is_typing=typing, typing_at=self.clock() if typing else None)

    def presence_of(self, identity: str) -> Dict[str, Any]:
        """Return the derived presence of *identity*'s partner."""

        partner_id: Optional[str] = self.directory.partner_of(identity)
        if not partner_id:
            return {"connected": False}
        partner = self.accounts.get(partner_id)
        if partner is None:
            logger.warning("Partner %s of %s has no account record", partner_id, identity)
            return {"connected": False}

        now = self.clock()
        record = partner.presence
        return {
            "connected": True,
            "isOnline": is_recently_active(record, now, self.online_window_s),
            "lastActive": _isoformat(record.last_active_at),
            "isTyping": is_typing_now(record, now, self.typing_window_s),
        }


__all__ = ["PresenceTracker", "is_recently_active", "is_typing_now"]
