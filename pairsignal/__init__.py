# pairsignal
#
# Signaling and presence relay for two linked partners:
#  - per-recipient mailbox for offer/answer/end plus ICE candidate queues
#  - lazily derived online/typing presence
#  - minimal in-memory account store, bearer tokens and push delivery
#
# See pairsignal/api.py for the FastAPI app and entry point.

__version__ = "1.0.0"
