"""In-memory account store: identities, partner links, presence records and
push subscriptions.

The store never inspects ``encrypted_profile``; it is client-side ciphertext.
Every mutation happens under one store lock so a presence write or a link is
a single atomic upsert.
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
import uuid
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Optional

from .errors import (
    AlreadyLinked,
    CannotLinkSelf,
    InvalidInviteCode,
    NotFound,
    PartnerAlreadyLinked,
)

logger = logging.getLogger(__name__)

INVITE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
INVITE_LENGTH = 8

PRESENCE_FIELDS = ("last_active_at", "is_online", "is_typing", "typing_at")


@dataclass
class PresenceRecord:
    last_active_at: float
    is_online: bool = False
    is_typing: bool = False
    typing_at: Optional[float] = None


@dataclass
class Account:
    id: str
    public_id: str
    invite_code: str
    created_at: float
    presence: PresenceRecord
    encrypted_profile: Optional[Dict[str, Any]] = None
    partner_id: Optional[str] = None
    push_subscription: Optional[Dict[str, Any]] = None

    def to_public_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "publicId": self.public_id,
            "encryptedProfile": self.encrypted_profile,
            "partnerId": self.partner_id,
            "inviteCode": self.invite_code,
        }


@dataclass(frozen=True)
class AccountLookup:
    """What the push collaborator needs to know about an identity."""

    exists: bool
    push_subscription_present: bool = False


def generate_invite_code(length: int = INVITE_LENGTH) -> str:
    return "".join(secrets.choice(INVITE_ALPHABET) for _ in range(length))


class AccountStore:
    """Thread-safe account registry keyed by identity."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.RLock()
        self._accounts: Dict[str, Account] = {}
        self._by_public_id: Dict[str, str] = {}
        self._by_invite: Dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._accounts)

    # ------------------------------------------------------------------
    # Registration and lookup
    # ------------------------------------------------------------------
    def register(self, encrypted_profile: Optional[Dict[str, Any]] = None) -> Account:
        now = self._clock()
        with self._lock:
            invite_code = generate_invite_code()
            while invite_code in self._by_invite:
                invite_code = generate_invite_code()
            account = Account(
                id=uuid.uuid4().hex,
                public_id=secrets.token_hex(16),
                invite_code=invite_code,
                created_at=now,
                presence=PresenceRecord(last_active_at=now),
                encrypted_profile=encrypted_profile,
            )
            self._accounts[account.id] = account
            self._by_public_id[account.public_id] = account.id
            self._by_invite[invite_code] = account.id
        logger.info("Registered account %s", account.id)
        return self._snapshot(account)

    def get(self, identity: str) -> Optional[Account]:
        with self._lock:
            account = self._accounts.get(identity)
            return self._snapshot(account) if account else None

    def find_by_public_id(self, public_id: str) -> Optional[Account]:
        with self._lock:
            identity = self._by_public_id.get(public_id)
            return self.get(identity) if identity else None

    def find_by_invite_code(self, code: str) -> Optional[Account]:
        with self._lock:
            identity = self._by_invite.get(code.upper())
            return self.get(identity) if identity else None

    def get_partner_id(self, identity: str) -> Optional[str]:
        with self._lock:
            account = self._accounts.get(identity)
            return account.partner_id if account else None

    def get_account(self, identity: str) -> AccountLookup:
        with self._lock:
            account = self._accounts.get(identity)
            if account is None:
                return AccountLookup(exists=False)
            subscription = account.push_subscription or {}
            return AccountLookup(exists=True, push_subscription_present=bool(subscription.get("endpoint")))

    # ------------------------------------------------------------------
    # Linking
    # ------------------------------------------------------------------
    def link(self, identity: str, invite_code: str) -> Account:
        """Link *identity* with the owner of *invite_code* and return the partner.

        Both sides are written under the store lock, so ``partner_of`` is
        always symmetric to readers.
        """

        with self._lock:
            partner_id = self._by_invite.get(invite_code.upper())
            partner = self._accounts.get(partner_id) if partner_id else None
            if partner is None:
                raise InvalidInviteCode()
            if partner.id == identity:
                raise CannotLinkSelf()
            if partner.partner_id:
                raise PartnerAlreadyLinked()
            account = self._require(identity)
            if account.partner_id:
                raise AlreadyLinked()

            account.partner_id = partner.id
            partner.partner_id = account.id
            logger.info("Linked accounts %s <-> %s", account.id, partner.id)
            return self._snapshot(partner)

    # ------------------------------------------------------------------
    # Presence and push subscription upserts
    # ------------------------------------------------------------------
    def update_presence(self, identity: str, **fields: Any) -> PresenceRecord:
        unknown = set(fields) - set(PRESENCE_FIELDS)
        if unknown:
            raise TypeError(f"Unknown presence fields: {sorted(unknown)}")
        with self._lock:
            account = self._require(identity)
            for name, value in fields.items():
                setattr(account.presence, name, value)
            return replace(account.presence)

    def set_push_subscription(self, identity: str, subscription: Dict[str, Any]) -> None:
        with self._lock:
            self._require(identity).push_subscription = dict(subscription)

    def clear_push_subscription(self, identity: str) -> None:
        with self._lock:
            account = self._accounts.get(identity)
            if account is not None:
                account.push_subscription = None

    def _require(self, identity: str) -> Account:
        account = self._accounts.get(identity)
        if account is None:
            raise NotFound("User not found")
        return account

    @staticmethod
    def _snapshot(account: Account) -> Account:
        return replace(
            account,
            presence=replace(account.presence),
            encrypted_profile=dict(account.encrypted_profile) if account.encrypted_profile else None,
            push_subscription=dict(account.push_subscription) if account.push_subscription else None,
        )


__all__ = [
    "Account",
    "AccountLookup",
    "AccountStore",
    "INVITE_ALPHABET",
    "PresenceRecord",
    "generate_invite_code",
]
