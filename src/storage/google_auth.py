import asyncio
import logging
import os
from datetime import timezone
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from storage.base import Repository

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/userinfo.email",
    "openid",
]


class GoogleTokenStore:
    """Google OAuth tokens per user, encrypted at rest with Fernet."""

    def __init__(self, repo: Repository, key: Optional[str] = None):
        self.repo = repo
        key = key or os.getenv("GOOGLE_TOKEN_ENCRYPTION_KEY")
        if not key:
            # Development only: tokens written with this key are unreadable after a restart
            logger.warning(
                "GOOGLE_TOKEN_ENCRYPTION_KEY not set. Generating a temporary key."
            )
            key = Fernet.generate_key().decode()
        self.fernet = Fernet(key.encode() if isinstance(key, str) else key)

    def _encrypt(self, data: Optional[str]) -> Optional[str]:
        if not data:
            return None
        return self.fernet.encrypt(data.encode()).decode()

    def _decrypt(self, token: Optional[str]) -> Optional[str]:
        if not token:
            return None
        try:
            return self.fernet.decrypt(token.encode()).decode()
        except InvalidToken:
            logger.error("Failed to decrypt stored Google token")
            return None

    async def save_credentials(
        self, user_id: str, credentials: Credentials, email: Optional[str] = None
    ) -> None:
        # Google omits the refresh token on re-consent; the stored one is kept then
        await self.repo.save_google_tokens(
            user_id,
            access_token=self._encrypt(credentials.token),
            refresh_token=self._encrypt(credentials.refresh_token),
            token_expiry=_aware(credentials.expiry),
            email=email,
        )
        logger.info(f"Saved Google credentials for user {user_id}")

    async def get_credentials(self, user_id: str) -> Optional[Credentials]:
        row = await self.repo.get_google_tokens(user_id)
        if not row:
            return None

        access_token = self._decrypt(row.get("access_token"))
        if not access_token:
            return None

        # google-auth compares expiry against a naive UTC now
        expiry = row.get("token_expiry")
        if expiry and expiry.tzinfo:
            expiry = expiry.astimezone(timezone.utc).replace(tzinfo=None)

        return Credentials(
            token=access_token,
            refresh_token=self._decrypt(row.get("refresh_token")),
            token_uri=GOOGLE_TOKEN_URI,
            client_id=os.getenv("GOOGLE_CLIENT_ID"),
            client_secret=os.getenv("GOOGLE_CLIENT_SECRET"),
            scopes=CALENDAR_SCOPES,
            expiry=expiry,
        )

    async def refresh_if_needed(self, user_id: str, credentials: Credentials) -> Credentials:
        """Refresh an expired access token and persist the new one."""
        if credentials.valid or not credentials.refresh_token:
            return credentials

        await asyncio.to_thread(credentials.refresh, Request())
        await self.save_credentials(user_id, credentials)
        logger.info(f"Refreshed Google access token for user {user_id}")
        return credentials

    async def get_email(self, user_id: str) -> Optional[str]:
        row = await self.repo.get_google_tokens(user_id)
        return row.get("email") if row else None

    async def is_connected(self, user_id: str) -> bool:
        return await self.repo.get_google_tokens(user_id) is not None

    async def delete_credentials(self, user_id: str) -> None:
        await self.repo.delete_google_tokens(user_id)
        logger.info(f"Deleted Google credentials for user {user_id}")


def _aware(expiry):
    if expiry is not None and expiry.tzinfo is None:
        return expiry.replace(tzinfo=timezone.utc)
    return expiry
