"""Best-effort push of fresh notifications to users' live sessions."""

from __future__ import annotations

from typing import Any, Mapping, Protocol

import httpx

from serverlister.logging import get_logger
from serverlister.realtime.manager import SSEConnectionManager


NOTIFICATION_EVENT = "notification"


class DeliveryError(RuntimeError):
    """Raised when the push channel itself cannot be reached."""


class DeliveryBridge(Protocol):
    """Push channel used by the fan-out service."""

    def push(self, user_id: str, event: str, data: Mapping[str, Any]) -> bool:  # pragma: no cover - protocol
        """Deliver *event* to *user_id*; ``False`` when nobody is listening."""


class LocalDeliveryBridge:
    """Publish straight into the SSE connections held by this process."""

    def __init__(self, manager: SSEConnectionManager) -> None:
        self._manager = manager

    def push(self, user_id: str, event: str, data: Mapping[str, Any]) -> bool:
        return self._manager.publish(user_id, event, data)


class HTTPDeliveryBridge:
    """Forward pushes from the worker to the API process over HTTP."""

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        client: httpx.Client | None = None,
        timeout: float = 5.0,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)
        self._token = token
        self._logger = get_logger(__name__)

    def close(self) -> None:
        """Release underlying HTTP resources if we created the client."""

        if self._owns_client:
            self._client.close()

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["X-Internal-Token"] = self._token
        return headers

    def push(self, user_id: str, event: str, data: Mapping[str, Any]) -> bool:
        try:
            response = self._client.post(
                "/sse/notify",
                json={"userId": user_id, "event": event, "data": dict(data)},
                headers=self._headers(),
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise DeliveryError(f"Push endpoint request failed: {exc}") from exc
        body = response.json()
        delivered = bool(body.get("success")) if isinstance(body, Mapping) else False
        self._logger.debug(
            "delivery.push.forwarded", user_id=user_id, event=event, delivered=delivered
        )
        return delivered

    def __enter__(self) -> "HTTPDeliveryBridge":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


class NullDeliveryBridge:
    """Bridge used where no live channel exists; every push is a no-op."""

    def push(self, user_id: str, event: str, data: Mapping[str, Any]) -> bool:
        return False


def push_safely(
    bridge: DeliveryBridge, user_id: str, event: str, data: Mapping[str, Any]
) -> dict[str, Any]:
    """Push through *bridge* and describe the outcome instead of raising."""

    logger = get_logger(__name__)
    try:
        delivered = bridge.push(user_id, event, data)
    except Exception as exc:
        logger.warning(
            "delivery.push.failed", user_id=user_id, event=event, error=str(exc)
        )
        return {"sent": False, "error": str(exc)}
    if not delivered:
        logger.info("delivery.push.no_listener", user_id=user_id, event=event)
    return {"sent": delivered}


__all__ = [
    "DeliveryBridge",
    "DeliveryError",
    "HTTPDeliveryBridge",
    "LocalDeliveryBridge",
    "NOTIFICATION_EVENT",
    "NullDeliveryBridge",
    "push_safely",
]
