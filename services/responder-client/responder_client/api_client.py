"""
Backend API Client
Sends responder actions to the lifecycle endpoints
"""
from typing import Any, Dict, Literal, Optional

import httpx
import structlog

from .config import get_settings

logger = structlog.get_logger()

ActionName = Literal["on_the_way", "arrived", "responded", "declined"]

# Responder action -> PATCH /api/v1/reports/{id}/<path>
ACTION_PATHS: Dict[str, str] = {
    "on_the_way": "ontheway",
    "arrived": "arrived",
    "responded": "respond",
    "declined": "decline",
}


class OfflineError(Exception):
    """Request never got an acknowledgement: no route, connection drop or timeout"""


class ServerError(Exception):
    """The backend answered with an error status"""

    def __init__(self, status_code: int, detail: str):
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail

    @property
    def permanent(self) -> bool:
        """Retrying cannot succeed (unknown report, bad payload, not allowed)"""
        return 400 <= self.status_code < 500 and self.status_code not in (408, 429)


class ResponderAPIClient:
    """Client for the ZapAlert backend, authenticated as one responder"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        ack_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.backend_url).rstrip("/")
        self.token = token or settings.api_token
        self.ack_timeout = ack_timeout or settings.ack_timeout_seconds
        self.health_timeout = settings.health_timeout_seconds
        self.transport = transport

        self.headers = {"Content-Type": "application/json"}
        if self.token:
            self.headers["Authorization"] = f"Bearer {self.token}"

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=timeout,
            transport=self.transport,
        )

    async def perform(self, action: str, report_id: str) -> Dict[str, Any]:
        """
        Send one responder action

        Raises:
            ValueError: unknown action
            OfflineError: no acknowledgement arrived
            ServerError: the backend rejected or failed the action
        """
        if action not in ACTION_PATHS:
            raise ValueError(f"Unknown responder action: {action}")

        url = f"/api/v1/reports/{report_id}/{ACTION_PATHS[action]}"

        try:
            async with self._client(self.ack_timeout) as client:
                response = await client.patch(url)
        except httpx.TransportError as e:
            logger.warning("responder_action_unacknowledged", action=action, report_id=report_id, error=str(e))
            raise OfflineError(str(e)) from e

        if response.status_code >= 400:
            detail = _error_detail(response)
            logger.error(
                "responder_action_failed",
                action=action,
                report_id=report_id,
                status=response.status_code,
                detail=detail,
            )
            raise ServerError(response.status_code, detail)

        logger.info("responder_action_sent", action=action, report_id=report_id)
        return response.json()

    async def mark_on_the_way(self, report_id: str) -> Dict[str, Any]:
        return await self.perform("on_the_way", report_id)

    async def mark_arrived(self, report_id: str) -> Dict[str, Any]:
        return await self.perform("arrived", report_id)

    async def mark_responded(self, report_id: str) -> Dict[str, Any]:
        return await self.perform("responded", report_id)

    async def decline(self, report_id: str) -> Dict[str, Any]:
        return await self.perform("declined", report_id)

    async def health(self) -> bool:
        """True when the backend answers /health"""
        try:
            async with self._client(self.health_timeout) as client:
                response = await client.get("/health", headers={"Cache-Control": "no-cache"})
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.debug("health_check_failed", error=str(e))
            return False


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or body)
    return str(body)
