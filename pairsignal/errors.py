"""Error taxonomy shared by the relay, the account store and the HTTP layer."""

from __future__ import annotations


class RelayError(Exception):
    """Base class for errors that map onto a stable client-facing code."""

    code = "relay_error"
    status_code = 400
    message = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.message
        super().__init__(self.message)

    def as_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class Unauthenticated(RelayError):
    code = "unauthenticated"
    status_code = 401
    message = "Token is not valid"


class NoPartnerLinked(RelayError):
    code = "no_partner_linked"
    message = "No partner connected"


class MissingPayload(RelayError):
    code = "missing_payload"
    message = "Required field missing"


class NotFound(RelayError):
    code = "not_found"
    status_code = 404
    message = "Not found"


class InvalidInviteCode(RelayError):
    code = "invalid_invite_code"
    status_code = 404
    message = "Invalid invite code"


class CannotLinkSelf(RelayError):
    code = "cannot_link_self"
    message = "Cannot link with yourself"


class PartnerAlreadyLinked(RelayError):
    code = "partner_already_linked"
    message = "Partner already linked"


class AlreadyLinked(RelayError):
    code = "already_linked"
    message = "You are already linked"


class InvalidSubscription(RelayError):
    code = "invalid_subscription"
    message = "Invalid subscription"


class InternalFailure(RelayError):
    code = "internal_failure"
    status_code = 500
    message = "Server error"


__all__ = [
    "AlreadyLinked",
    "CannotLinkSelf",
    "InternalFailure",
    "InvalidInviteCode",
    "InvalidSubscription",
    "MissingPayload",
    "NoPartnerLinked",
    "NotFound",
    "PartnerAlreadyLinked",
    "RelayError",
    "Unauthenticated",
]
