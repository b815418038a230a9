import asyncio
import logging
import os
import secrets
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Cookie, Depends, Response
from google_auth_oauthlib.flow import Flow

from api.dependencies import get_current_user_id, get_token_store
from storage.google_auth import CALENDAR_SCOPES, GoogleTokenStore
from taskspace.errors import NotConfiguredError

router = APIRouter(prefix="/calendar/auth")
logger = logging.getLogger(__name__)

# Google Auth Configuration
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
GOOGLE_REDIRECT_URI = os.getenv(
    "GOOGLE_REDIRECT_URI", "http://localhost:8000/calendar/auth/callback"
)
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

STATE_COOKIE = "oauth_state"
VERIFIER_COOKIE = "oauth_verifier"
COOKIE_MAX_AGE = 600
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"


def build_flow(code_verifier: Optional[str] = None) -> Flow:
    if not GOOGLE_CLIENT_ID or not GOOGLE_CLIENT_SECRET:
        raise NotConfiguredError("Google credentials not configured")

    return Flow.from_client_config(
        {
            "web": {
                "client_id": GOOGLE_CLIENT_ID,
                "client_secret": GOOGLE_CLIENT_SECRET,
                "auth_uri": "https://accounts.google.com/o/oauth2/auth",
                "token_uri": "https://oauth2.googleapis.com/token",
            }
        },
        scopes=CALENDAR_SCOPES,
        redirect_uri=GOOGLE_REDIRECT_URI,
        code_verifier=code_verifier,
    )


def _redirect(query: str) -> Response:
    return Response(status_code=307, headers={"Location": f"{FRONTEND_URL}?{query}"})


def _error_redirect(reason: str) -> Response:
    response = _redirect(f"calendar_error={quote(reason)}")
    response.delete_cookie(STATE_COOKIE)
    response.delete_cookie(VERIFIER_COOKIE)
    return response


@router.get("/connect")
async def connect(user_id: str = Depends(get_current_user_id)) -> Response:
    """Starts the OAuth2 flow: redirects to Google with a CSRF-protected state."""
    flow = build_flow()
    state = f"{secrets.token_urlsafe(24)}:{user_id}"
    authorization_url, _ = flow.authorization_url(
        access_type="offline",
        include_granted_scopes="true",
        prompt="consent",
        state=state,
    )

    response = Response(status_code=307, headers={"Location": authorization_url})
    response.set_cookie(
        STATE_COOKIE, state.split(":", 1)[0], max_age=COOKIE_MAX_AGE, httponly=True, samesite="lax"
    )
    if flow.code_verifier:
        response.set_cookie(
            VERIFIER_COOKIE, flow.code_verifier, max_age=COOKIE_MAX_AGE, httponly=True, samesite="lax"
        )
    return response


@router.get("/callback")
async def callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    oauth_state: Optional[str] = Cookie(default=None),
    oauth_verifier: Optional[str] = Cookie(default=None),
    token_store: GoogleTokenStore = Depends(get_token_store),
) -> Response:
    """Handles the OAuth2 callback and stores the tokens for the user in the state."""
    if error:
        logger.error(f"OAuth error: {error}")
        return _error_redirect(error)
    if not code or not state or ":" not in state:
        return _error_redirect("invalid_request")

    nonce, user_id = state.split(":", 1)
    if not oauth_state or not secrets.compare_digest(nonce, oauth_state):
        logger.warning(f"OAuth state mismatch for user {user_id}")
        return _error_redirect("invalid_state")

    try:
        flow = build_flow(code_verifier=oauth_verifier)
        await asyncio.to_thread(flow.fetch_token, code=code)
    except Exception as e:
        logger.error(f"OAuth token exchange failed: {e}")
        return _error_redirect("token_exchange_failed")

    credentials = flow.credentials

    try:
        session = flow.authorized_session()
        user_info = (await asyncio.to_thread(session.get, USERINFO_URL)).json()
        email = user_info.get("email")
    except Exception as e:
        logger.error(f"Failed to fetch user email: {e}")
        email = None

    await token_store.save_credentials(user_id, credentials, email)
    logger.info(f"Google Calendar connected for user {user_id}")

    response = _redirect("calendar_connected=true")
    response.delete_cookie(STATE_COOKIE)
    response.delete_cookie(VERIFIER_COOKIE)
    return response


@router.get("/status")
async def status(
    user_id: str = Depends(get_current_user_id),
    token_store: GoogleTokenStore = Depends(get_token_store),
) -> dict:
    """Check if the user is connected."""
    connected = await token_store.is_connected(user_id)
    email = await token_store.get_email(user_id) if connected else None
    return {"connected": connected, "email": email}


@router.post("/disconnect")
async def disconnect(
    user_id: str = Depends(get_current_user_id),
    token_store: GoogleTokenStore = Depends(get_token_store),
) -> dict:
    """Delete stored credentials."""
    await token_store.delete_credentials(user_id)
    return {"status": "disconnected"}
