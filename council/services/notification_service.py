"""
council.services.notification_service — Inbox Messages & Push Dispatch
=======================================================================

Two channels:

* **Inbox** — a row in ``inbox_messages`` written inside the caller's
  transaction, so the message commits (or rolls back) together with the
  state change that caused it.
* **Push** — an HTTP call to the platform's push service.  Strictly
  best-effort: failures are logged at DEBUG and never raised, so a dead
  push service can't roll back an expulsion or stop a reminder batch.
"""

from __future__ import annotations

import logging
import os
import uuid

import httpx
from sqlalchemy.orm import Session

from council.database.models import InboxMessage

logger = logging.getLogger(__name__)

PUSH_TIMEOUT_SECONDS = 5.0


def enqueue_message(
    session: Session,
    professional_id: uuid.UUID,
    *,
    title: str,
    content: str,
    message_type: str,
    tone: str,
    trigger_state: str,
) -> InboxMessage:
    """Add an inbox message to *session* (committed by the caller)."""
    message = InboxMessage(
        professional_id=professional_id,
        title=title,
        content=content,
        message_type=message_type,
        tone=tone,
        trigger_state=trigger_state,
    )
    session.add(message)
    return message


class PushDispatcher:
    """Fire-and-forget client for the push-notification service."""

    def __init__(
        self,
        url: str | None,
        service_key: str | None = None,
        *,
        timeout: float = PUSH_TIMEOUT_SECONDS,
    ) -> None:
        self.url = url
        self.service_key = service_key
        self.timeout = timeout

    @classmethod
    def from_env(cls, url: str | None) -> PushDispatcher:
        """Build a dispatcher using ``PUSH_SERVICE_KEY`` from the environment."""
        return cls(url, os.getenv("PUSH_SERVICE_KEY") or None)

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    def send(
        self,
        professional_id: uuid.UUID,
        *,
        title: str,
        body: str,
        url: str | None = None,
    ) -> bool:
        """POST one push notification.  Returns True if the service accepted it."""
        if not self.enabled:
            return False

        headers = {"Content-Type": "application/json"}
        if self.service_key:
            headers["Authorization"] = f"Bearer {self.service_key}"

        try:
            resp = httpx.post(
                self.url,
                json={
                    "professionalId": str(professional_id),
                    "title": title,
                    "body": body,
                    "url": url,
                },
                headers=headers,
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.debug("Push to %s failed (ignored): %s", professional_id, exc)
            return False
        return True
