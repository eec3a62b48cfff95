"""Request-level signaling contract between two paired peers.

The relay keeps no session object. Every send resolves the sender's partner
afresh and writes into the partner's mailbox; the peers themselves are
responsible for sequencing offer, answer and candidates. Sends are
fire-and-forget: success means the write landed in the mailbox, not that the
partner has read it.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from ..errors import MissingPayload
from ..pairing import PairingDirectory
from .mailbox import Answer, CandidateFragment, Drained, End, Mailbox, Offer

logger = logging.getLogger(__name__)


def _now_ms(clock: Callable[[], float]) -> int:
    return int(clock() * 1000)


def _blank(value: Any) -> bool:
    """True for the scalar "nothing" values: null, false, empty string, zero, NaN.

    Empty objects and arrays are payloads and pass.
    """

    if value is None or value is False or value == "":
        return True
    return isinstance(value, (int, float)) and (value == 0 or value != value)


class SignalRelay:
    def __init__(
        self,
        mailbox: Mailbox,
        directory: PairingDirectory,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.mailbox = mailbox
        self.directory = directory
        self.clock = clock

    def send_offer(self, sender: str, sdp: Any) -> str:
        """Place an offer in the partner's slot and return the partner id."""

        if _blank(sdp):
            raise MissingPayload("SDP offer required")
        partner_id = self.directory.require_partner(sender)
        self.mailbox.set_entry(partner_id, Offer(sdp=sdp, sender=sender, timestamp=_now_ms(self.clock)))
        logger.debug("Offer %s -> %s", sender, partner_id)
        return partner_id

    def send_answer(self, sender: str, sdp: Any) -> str:
        if _blank(sdp):
            raise MissingPayload("SDP answer required")
        partner_id = self.directory.require_partner(sender)
        self.mailbox.set_entry(partner_id, Answer(sdp=sdp, sender=sender, timestamp=_now_ms(self.clock)))
        logger.debug("Answer %s -> %s", sender, partner_id)
        return partner_id

    def send_candidate(self, sender: str, candidate: Any) -> str:
        # A missing candidate is queued as-is.
        partner_id = self.directory.require_partner(sender)
        fragment = CandidateFragment(candidate=candidate, sender=sender, timestamp=_now_ms(self.clock))
        self.mailbox.append_candidate(partner_id, fragment)
        logger.debug("Candidate %s -> %s", sender, partner_id)
        return partner_id

    def send_end(self, sender: str) -> bool:
        """Signal the partner that the session ended.

        Returns ``False`` without writing anything when the sender is unpaired.
        """

        partner_id = self.directory.partner_of(sender)
        if partner_id is None:
            return False
        self.mailbox.set_entry(partner_id, End(sender=sender, timestamp=_now_ms(self.clock)))
        logger.debug("End %s -> %s", sender, partner_id)
        return True

    def poll(self, recipient: str) -> Drained:
        drained = self.mailbox.drain(recipient)
        if not drained.empty:
            logger.debug(
                "Delivered %s and %d candidate(s) to %s",
                drained.entry.type if drained.entry else "no entry",
                len(drained.candidates),
                recipient,
            )
        return drained


__all__ = ["SignalRelay"]
