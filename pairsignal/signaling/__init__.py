# Signaling package
#
# Provides:
#  - Atomic per-recipient mailbox (single replace-on-write slot + candidate queue)
#  - SignalRelay: partner-resolving offer/answer/candidate/end sends and polling
#
# See pairsignal/api.py for the HTTP routes built on top.
from .mailbox import (
    Answer,
    CandidateFragment,
    Drained,
    End,
    InMemoryMailbox,
    Mailbox,
    MailboxEntry,
    Offer,
)
from .relay import SignalRelay

__all__ = [
    "Answer",
    "CandidateFragment",
    "Drained",
    "End",
    "InMemoryMailbox",
    "Mailbox",
    "MailboxEntry",
    "Offer",
    "SignalRelay",
]
