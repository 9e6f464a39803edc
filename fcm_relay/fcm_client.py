import asyncio
import logging
import os
from typing import Any, Optional

import google.auth
import httpx
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account

logger = logging.getLogger(__name__)

FCM_SCOPES = ["https://www.googleapis.com/auth/firebase.messaging"]
FCM_SEND_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"
NOTIFICATION_TITLE = "Incoming message"

# Placeholder usado en docker-compose de desarrollo
MOCK_PROJECT_ID = "mock-project-id"


def is_mock_project(project_id: Optional[str]) -> bool:
    return not project_id or project_id == MOCK_PROJECT_ID


def load_credentials(key_file: Optional[str] = None) -> Any:
    if key_file:
        return service_account.Credentials.from_service_account_file(
            os.path.abspath(key_file), scopes=FCM_SCOPES
        )
    credentials, _ = google.auth.default(scopes=FCM_SCOPES)
    return credentials


class FcmGateway:
    """Thin client for the FCM HTTP v1 ``messages:send`` endpoint."""

    def __init__(
        self,
        project_id: str,
        key_file: Optional[str] = None,
        credentials: Any = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 5.0,
    ):
        self.project_id = project_id
        self.url = FCM_SEND_URL.format(project_id=project_id)
        self._key_file = key_file
        self._credentials = credentials
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def _access_token(self) -> str:
        if self._credentials is None:
            self._credentials = await asyncio.to_thread(load_credentials, self._key_file)
        if not self._credentials.valid:
            # refresh() es bloqueante (requests)
            await asyncio.to_thread(self._credentials.refresh, GoogleAuthRequest())
        return self._credentials.token

    async def send(self, device_id: str, body: str) -> bool:
        """Push ``body`` to ``device_id``; True only when FCM answers 200.

        Transport and auth errors propagate to the caller.
        """
        token = await self._access_token()
        payload = {
            "message": {
                "token": device_id,
                "notification": {
                    "title": NOTIFICATION_TITLE,
                    "body": body,
                },
            },
        }
        resp = await self._client.post(
            self.url,
            json=payload,
            headers={"Authorization": f"Bearer {token}"},
        )
        if resp.status_code != 200:
            logger.warning("fcm_send_rejected", extra={"extra": {
                "event": "fcm_send_rejected",
                "status_code": resp.status_code,
                "response": resp.text[:500],
            }})
            return False
        return True

    async def aclose(self):
        await self._client.aclose()
