"""
Client side of the IoT lock bridge.

``LockGateway`` is the contract the access controller and the poller talk
to. ``HttpLockGateway`` speaks JSON over HTTP to the bridge configured by
``LOCK_GATEWAY_URL``. Every call carries a bounded timeout and is made once:
lock actuation is never retried behind the operator's back.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol

import httpx
import pydantic

from boothcore.config import settings
from boothcore.devices.schemas import GatewayLockStatus
from boothcore.exceptions import DeviceTimeout, DeviceUnreachable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LockStatusReport:
    lock_status: str
    battery_level: Optional[int] = None
    reported_at: Optional[datetime] = None


class LockGateway(Protocol):
    def lock(self, external_id: str) -> None: ...

    def unlock(self, external_id: str) -> None: ...

    def status(self, external_id: str) -> LockStatusReport: ...

    def close(self) -> None: ...


class HttpLockGateway:

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = settings.DEVICE_TIMEOUT_SECONDS,
                 transport: Optional[httpx.BaseTransport] = None):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.client = httpx.Client(base_url=base_url, timeout=timeout, headers=headers, transport=transport)

    def _call(self, method: str, path: str, external_id: str) -> httpx.Response:
        try:
            resp = self.client.request(method, path)
            resp.raise_for_status()
        except httpx.TimeoutException:
            logger.warning("Lock %s: gateway timed out on %s %s", external_id, method, path)
            raise DeviceTimeout(f"Lock {external_id} did not answer in time")
        except httpx.HTTPStatusError as e:
            logger.warning("Lock %s: gateway answered %s on %s %s",
                           external_id, e.response.status_code, method, path)
            raise DeviceUnreachable(
                f"Lock gateway refused {path} for {external_id}: HTTP {e.response.status_code}"
            )
        except httpx.HTTPError as e:
            logger.warning("Lock %s: gateway error on %s %s: %s", external_id, method, path, e)
            raise DeviceUnreachable(f"Lock gateway unreachable for {external_id}")
        return resp

    def lock(self, external_id: str) -> None:
        self._call("POST", f"/locks/{external_id}/lock", external_id)

    def unlock(self, external_id: str) -> None:
        self._call("POST", f"/locks/{external_id}/unlock", external_id)

    def status(self, external_id: str) -> LockStatusReport:
        resp = self._call("GET", f"/locks/{external_id}", external_id)
        try:
            payload = GatewayLockStatus.model_validate(resp.json())
        except pydantic.ValidationError as e:
            logger.warning("Lock %s: malformed status from gateway: %s", external_id, e.errors())
            raise DeviceUnreachable(f"Lock gateway sent a malformed status for {external_id}")
        except ValueError:
            logger.warning("Lock %s: gateway sent a non-JSON status: %r", external_id, resp.text[:200])
            raise DeviceUnreachable(f"Lock gateway sent an unreadable status for {external_id}")
        return LockStatusReport(
            lock_status=payload.lock_status.value,
            battery_level=payload.battery_level,
            reported_at=payload.last_seen,
        )

    def close(self) -> None:
        self.client.close()


def build_gateway() -> Optional[HttpLockGateway]:
    if not settings.LOCK_GATEWAY_URL:
        return None
    return HttpLockGateway(settings.LOCK_GATEWAY_URL, settings.LOCK_GATEWAY_TOKEN)


def get_lock_gateway():
    """FastAPI dependency: one gateway client per request"""
    gateway = build_gateway()
    try:
        yield gateway
    finally:
        if gateway is not None:
            gateway.close()
