"""Read-only view over partner links held by the account store."""

from __future__ import annotations

from typing import Optional, Protocol

from .errors import NoPartnerLinked


class PartnerSource(Protocol):
    def get_partner_id(self, identity: str) -> Optional[str]:
        ...


class PairingDirectory:
    """Resolves an identity to its linked partner.

    Linking itself belongs to the account store; the directory relies on its
    invariants (symmetric, at most one partner, never self) without
    re-validating them.
    """

    def __init__(self, source: PartnerSource) -> None:
        self.source = source

    def partner_of(self, identity: str) -> Optional[str]:
        return self.source.get_partner_id(identity) or None

    def require_partner(self, identity: str) -> str:
        partner_id = self.partner_of(identity)
        if partner_id is None:
            raise NoPartnerLinked()
        return partner_id


__all__ = ["PairingDirectory", "PartnerSource"]
