"""FastAPI application exposing the partner signaling and presence relay over HTTP."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import config
from .accounts import AccountStore
from .auth import TokenIssuer, current_identity
from .errors import InternalFailure, InvalidSubscription, MissingPayload, NotFound, RelayError
from .notifications import PushNotifier, build_payload
from .pairing import PairingDirectory
from .presence import PresenceTracker
from .signaling import InMemoryMailbox, Mailbox, SignalRelay

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------------------
# Request bodies
# ------------------------------------------------------------------------------
class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RegisterRequest(_CamelModel):
    encrypted_profile: Optional[Dict[str, Any]] = Field(default=None, alias="encryptedProfile")


class LoginRequest(_CamelModel):
    public_id: Optional[str] = Field(default=None, alias="publicId")


class LinkPartnerRequest(_CamelModel):
    invite_code: Optional[str] = Field(default=None, alias="inviteCode")


class TypingRequest(_CamelModel):
    is_typing: Any = Field(default=None, alias="isTyping")


class SessionDescriptionRequest(BaseModel):
    sdp: Any = None


class CandidateRequest(BaseModel):
    candidate: Any = None


class SubscribeRequest(BaseModel):
    subscription: Optional[Dict[str, Any]] = None


class SendSignalRequest(_CamelModel):
    signal_type: Optional[str] = Field(default=None, alias="signalType")
    signal_label: Optional[str] = Field(default=None, alias="signalLabel")


# ------------------------------------------------------------------------------
# Component accessors
# ------------------------------------------------------------------------------
def get_accounts(request: Request) -> AccountStore:
    return request.app.state.accounts


def get_relay(request: Request) -> SignalRelay:
    return request.app.state.relay


def get_presence(request: Request) -> PresenceTracker:
    return request.app.state.presence


def get_directory(request: Request) -> PairingDirectory:
    return request.app.state.directory


def get_notifier(request: Request) -> PushNotifier:
    return request.app.state.notifier


def get_tokens(request: Request) -> TokenIssuer:
    return request.app.state.tokens


# ------------------------------------------------------------------------------
# /api/auth
# ------------------------------------------------------------------------------
auth_router = APIRouter(prefix="/api/auth", tags=["auth"])


@auth_router.post("/register", status_code=201)
def register(
    payload: RegisterRequest,
    accounts: AccountStore = Depends(get_accounts),
    tokens: TokenIssuer = Depends(get_tokens),
) -> Dict[str, Any]:
    """Create an account holding only an opaque encrypted profile."""

    account = accounts.register(encrypted_profile=payload.encrypted_profile)
    return {
        "token": tokens.issue(account.id),
        "user": {"id": account.id, "publicId": account.public_id, "inviteCode": account.invite_code},
    }


@auth_router.post("/login")
def login(
    payload: LoginRequest,
    accounts: AccountStore = Depends(get_accounts),
    presence: PresenceTracker = Depends(get_presence),
    tokens: TokenIssuer = Depends(get_tokens),
) -> Dict[str, Any]:
    """Log in by public id; the client checks its passphrase locally."""

    if not payload.public_id:
        raise MissingPayload("Public ID required")
    account = accounts.find_by_public_id(payload.public_id)
    if account is None:
        raise NotFound("User not found")
    presence.touch_activity(account.id)
    return {"token": tokens.issue(account.id), "user": account.to_public_dict()}


@auth_router.get("/me")
def me(
    identity: str = Depends(current_identity),
    accounts: AccountStore = Depends(get_accounts),
    presence: PresenceTracker = Depends(get_presence),
) -> Dict[str, Any]:
    """Return the caller's account; every call keeps the caller online."""

    account = accounts.get(identity)
    if account is None:
        raise NotFound("User not found")
    presence.touch_activity(identity)
    return account.to_public_dict()


@auth_router.post("/link-partner")
def link_partner(
    payload: LinkPartnerRequest,
    background: BackgroundTasks,
    identity: str = Depends(current_identity),
    accounts: AccountStore = Depends(get_accounts),
    notifier: PushNotifier = Depends(get_notifier),
) -> Dict[str, Any]:
    if not payload.invite_code:
        raise MissingPayload("Invite code required")
    partner = accounts.link(identity, payload.invite_code)
    background.add_task(
        notifier.notify,
        partner.id,
        build_payload("Partner Connected", "Your partner has linked with you!", "PARTNER_LINKED"),
    )
    return {"message": "Successfully linked with partner", "partnerId": partner.id}


@auth_router.get("/partner-status")
def partner_status(
    identity: str = Depends(current_identity),
    presence: PresenceTracker = Depends(get_presence),
) -> Dict[str, Any]:
    return presence.presence_of(identity)


@auth_router.post("/logout")
def logout(
    identity: str = Depends(current_identity),
    presence: PresenceTracker = Depends(get_presence),
) -> Dict[str, Any]:
    presence.set_offline(identity)
    return {"message": "Logged out"}


@auth_router.post("/heartbeat")
def heartbeat(
    identity: str = Depends(current_identity),
    presence: PresenceTracker = Depends(get_presence),
) -> Dict[str, Any]:
    presence.touch_activity(identity)
    return {"ok": True}


@auth_router.post("/typing")
def set_typing_status(
    payload: TypingRequest,
    identity: str = Depends(current_identity),
    presence: PresenceTracker = Depends(get_presence),
) -> Dict[str, Any]:
    presence.set_typing(identity, payload.is_typing is True)
    return {"ok": True}


# ------------------------------------------------------------------------------
# /api/webrtc
# ------------------------------------------------------------------------------
webrtc_router = APIRouter(prefix="/api/webrtc", tags=["webrtc"])


@webrtc_router.post("/offer")
def send_offer(
    payload: SessionDescriptionRequest,
    identity: str = Depends(current_identity),
    relay: SignalRelay = Depends(get_relay),
) -> Dict[str, Any]:
    """Queue an offer for the caller's partner to pick up on its next poll."""

    relay.send_offer(identity, payload.sdp)
    return {"success": True}


@webrtc_router.post("/answer")
def send_answer(
    payload: SessionDescriptionRequest,
    identity: str = Depends(current_identity),
    relay: SignalRelay = Depends(get_relay),
) -> Dict[str, Any]:
    relay.send_answer(identity, payload.sdp)
    return {"success": True}


@webrtc_router.post("/ice-candidate")
def send_ice_candidate(
    payload: CandidateRequest,
    identity: str = Depends(current_identity),
    relay: SignalRelay = Depends(get_relay),
) -> Dict[str, Any]:
    relay.send_candidate(identity, payload.candidate)
    return {"success": True}


@webrtc_router.get("/poll")
def poll(
    identity: str = Depends(current_identity),
    relay: SignalRelay = Depends(get_relay),
) -> Dict[str, Any]:
    """Drain the caller's pending signal and ICE candidates."""

    return relay.poll(identity).to_dict()


@webrtc_router.post("/end")
def end_session(
    identity: str = Depends(current_identity),
    relay: SignalRelay = Depends(get_relay),
) -> Dict[str, Any]:
    relay.send_end(identity)
    return {"success": True}


# ------------------------------------------------------------------------------
# /api/notifications
# ------------------------------------------------------------------------------
notifications_router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@notifications_router.post("/subscribe")
def subscribe(
    payload: SubscribeRequest,
    identity: str = Depends(current_identity),
    accounts: AccountStore = Depends(get_accounts),
) -> Dict[str, Any]:
    subscription = payload.subscription
    if not subscription or not subscription.get("endpoint"):
        raise InvalidSubscription()
    accounts.set_push_subscription(identity, subscription)
    return {"success": True}


@notifications_router.get("/vapid-public-key")
def vapid_public_key() -> Dict[str, Any]:
    """Application server key browsers need to create a push subscription."""

    if not config.VAPID_PUBLIC_KEY:
        raise NotFound("Push notifications are not configured")
    return {"publicKey": config.VAPID_PUBLIC_KEY}


@notifications_router.post("/send-signal")
def send_signal(
    payload: SendSignalRequest,
    background: BackgroundTasks,
    identity: str = Depends(current_identity),
    directory: PairingDirectory = Depends(get_directory),
    notifier: PushNotifier = Depends(get_notifier),
) -> Dict[str, Any]:
    """Push a small "thinking of you" style signal to the caller's partner."""

    partner_id = directory.require_partner(identity)
    background.add_task(
        notifier.notify,
        partner_id,
        build_payload(
            "Us.",
            payload.signal_label or "Your partner sent you a signal",
            "SIGNAL",
            data={"signalType": payload.signal_type},
        ),
    )
    return {"success": True}


@notifications_router.post("/test")
def test_notification(
    background: BackgroundTasks,
    identity: str = Depends(current_identity),
    notifier: PushNotifier = Depends(get_notifier),
) -> Dict[str, Any]:
    background.add_task(notifier.notify, identity, build_payload("Us.", "This is a test notification.", "TEST"))
    return {"success": True}


# ------------------------------------------------------------------------------
# Error rendering
# ------------------------------------------------------------------------------
def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(RelayError)
    async def _relay_error(request: Request, exc: RelayError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(exc.as_dict(), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def _invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse({"error": "Invalid request body", "code": "invalid_request"}, status_code=400)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        message = "Not found" if exc.status_code == 404 else str(exc.detail)
        return JSONResponse({"error": message}, status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(InternalFailure().as_dict(), status_code=500)


# ------------------------------------------------------------------------------
# App factory
# ------------------------------------------------------------------------------
def create_app(
    *,
    accounts: Optional[AccountStore] = None,
    mailbox: Optional[Mailbox] = None,
    notifier: Optional[PushNotifier] = None,
    tokens: Optional[TokenIssuer] = None,
    clock: Callable[[], float] = time.time,
    max_candidates: Optional[int] = config.MAX_CANDIDATES,
) -> FastAPI:
    """Build the relay app with its components owned by ``app.state``."""

    if accounts is None:
        accounts = AccountStore(clock=clock)
    if mailbox is None:
        mailbox = InMemoryMailbox(max_candidates=max_candidates)
    directory = PairingDirectory(accounts)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if config.SECRET == config.DEV_SECRET:
            logger.warning("PAIRSIGNAL_SECRET is not set; using the development secret")
        logger.info("Relay started (environment=%s)", config.ENVIRONMENT)
        if not app.state.notifier.enabled:
            logger.warning("PAIRSIGNAL_VAPID_PRIVATE_KEY is not set; push notifications are disabled")
        yield
        app.state.mailbox.close()
        logger.info("Relay stopped")

    app = FastAPI(title="pairsignal relay", version=config.API_VERSION, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[config.CLIENT_URL],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.clock = clock
    app.state.accounts = accounts
    app.state.directory = directory
    app.state.mailbox = mailbox
    app.state.relay = SignalRelay(mailbox, directory, clock=clock)
    app.state.presence = PresenceTracker(accounts, directory, clock=clock)
    app.state.notifier = notifier if notifier is not None else PushNotifier(accounts)
    app.state.tokens = tokens if tokens is not None else TokenIssuer(clock=clock)

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": config.ENVIRONMENT,
        }

    @app.get("/api")
    def api_info() -> Dict[str, Any]:
        return {
            "name": config.API_NAME,
            "version": config.API_VERSION,
            "description": "Partner signaling and presence relay",
        }

    app.include_router(auth_router)
    app.include_router(webrtc_router)
    app.include_router(notifications_router)
    _install_error_handlers(app)
    return app


app = create_app()


def main() -> None:
    import uvicorn

    config.setup_logging()
    uvicorn.run(app, host=config.HOST, port=config.PORT, log_level=config.LOG_LEVEL)


__all__ = ["app", "create_app", "main"]


if __name__ == "__main__":
    main()
