import logging
import os
from typing import Optional

import requests

from taskspace.errors import InvalidRequestError, NotConfiguredError, UnreachableError, UpstreamError

logger = logging.getLogger(__name__)

CALENDAR_WEBHOOK_URL = os.getenv("CALENDAR_WEBHOOK_URL", "").strip()
WEBHOOK_SECRET = os.getenv("WEBHOOK_SECRET", "").strip()


def forward_to_webhook(
    title: Optional[str],
    date: Optional[str],
    description: Optional[str] = None,
    url: Optional[str] = None,
    secret: Optional[str] = None,
    timeout_s: float = 10.0,
) -> dict:
    """POST a task to the calendar automation webhook (blocking)."""
    url = url or CALENDAR_WEBHOOK_URL
    secret = secret or WEBHOOK_SECRET
    if not secret:
        raise NotConfiguredError("Webhook secret is not configured")
    if not url:
        raise NotConfiguredError("Webhook URL is not configured")
    if not title:
        raise InvalidRequestError("title is required")
    if not date:
        raise InvalidRequestError("date is required")

    try:
        r = requests.post(
            url,
            json={"title": title, "date": date, "description": description or ""},
            headers={"X-Webhook-Secret": secret},
            timeout=timeout_s,
        )
    except requests.RequestException as e:
        logger.error(f"Webhook request failed: {e}")
        raise UnreachableError("Failed to send to webhook", details=str(e)) from e

    if not r.ok:
        logger.warning(f"Webhook answered {r.status_code}")
        raise UpstreamError(f"Webhook error: {r.reason}", status_code=r.status_code, details=r.text)

    return {"success": True}
