"""Push notification delivery.

Payloads are encrypted and sent with ``pywebpush`` using the relay's VAPID
key pair. Delivery is best effort: :meth:`PushNotifier.notify` never raises,
and the HTTP layer schedules it as a background task so a failed push cannot
change the response a caller already received.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from pywebpush import WebPushException, webpush
from requests import RequestException

from . import config
from .accounts import AccountStore
from .utils.serialization import dumps

logger = logging.getLogger(__name__)

# Push services answer with these when a subscription no longer exists.
GONE_STATUSES = {404, 410}


def build_payload(title: str, body: str, type: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"title": title, "body": body, "type": type}
    if data is not None:
        payload["data"] = data
    return payload


class PushNotifier:
    """Sends encrypted Web Push messages to each subscriber's endpoint.

    ``send`` defaults to :func:`pywebpush.webpush`; it opens no connection
    until a push is actually delivered.
    """

    def __init__(
        self,
        accounts: AccountStore,
        send: Callable[..., Any] = webpush,
        vapid_private_key: str = config.VAPID_PRIVATE_KEY,
        vapid_email: str = config.VAPID_EMAIL,
        timeout: float = config.PUSH_TIMEOUT_S,
        ttl_s: int = config.PUSH_TTL_S,
    ) -> None:
        self.accounts = accounts
        self.send = send
        self.vapid_private_key = vapid_private_key
        self.vapid_claims = {"sub": vapid_email}
        self.timeout = timeout
        self.ttl_s = ttl_s

    @property
    def enabled(self) -> bool:
        return bool(self.vapid_private_key)

    def notify(self, identity: str, payload: Dict[str, Any]) -> bool:
        """Send *payload* to *identity*; return ``True`` if the push service accepted it."""

        lookup = self.accounts.get_account(identity)
        if not lookup.exists or not lookup.push_subscription_present:
            return False
        if not self.enabled:
            logger.debug("VAPID key not configured; skipping push to %s", identity)
            return False
        account = self.accounts.get(identity)
        subscription = account.push_subscription if account else None
        if not subscription:
            return False

        try:
            self.send(
                subscription_info=subscription,
                data=dumps(payload).decode("utf-8"),
                vapid_private_key=self.vapid_private_key,
                # pywebpush fills in "aud" per endpoint and mutates the dict.
                vapid_claims=dict(self.vapid_claims),
                timeout=self.timeout,
                ttl=self.ttl_s,
            )
        except WebPushException as exc:
            status = exc.response.status_code if exc.response is not None else None
            logger.warning("Push to %s rejected with status %s: %s", identity, status, exc.message)
            if status in GONE_STATUSES:
                self.accounts.clear_push_subscription(identity)
                logger.info("Dropped expired push subscription for %s", identity)
            return False
        except (RequestException, ValueError) as exc:
            logger.warning("Push to %s failed: %s", identity, exc)
            return False
        return True


__all__ = ["GONE_STATUSES", "PushNotifier", "build_payload"]
