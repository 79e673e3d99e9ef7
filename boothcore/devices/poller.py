"""Background polling of lock state through the gateway."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from boothcore.devices.controller import DeviceAccessController
from boothcore.devices.gateway import LockGateway, LockStatusReport
from boothcore.exceptions import DeviceTimeout, DeviceUnreachable
from boothcore.models import Device
from boothcore.tenants import Clock, utc_now


@dataclass(frozen=True)
class DeviceTarget:
    """What a poll was started against; results are dropped if it changed."""

    device_id: int
    tenant_id: int
    booth_id: Optional[int]
    external_id: str


@dataclass
class PollSummary:
    polled: int = 0
    updated: int = 0
    dropped: int = 0
    failed: int = 0


class DevicePoller:
    """Polls every assigned device with bounded concurrency."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        gateway_factory: Callable[[], Optional[LockGateway]],
        *,
        concurrency: int = 5,
        timeout: float = 5.0,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._session_factory = session_factory
        self._gateway_factory = gateway_factory
        self._concurrency = concurrency
        self._timeout = timeout
        self._clock = clock or utc_now
        self._logger = logger or logging.getLogger(__name__)

    def _load_targets(self) -> List[DeviceTarget]:
        db = self._session_factory()
        try:
            rows = db.query(Device).filter(Device.booth_id.isnot(None)).order_by(Device.id).all()
            return [DeviceTarget(d.id, d.tenant_id, d.booth_id, d.external_id) for d in rows]
        finally:
            db.close()

    def _apply(self, target: DeviceTarget, report: LockStatusReport) -> bool:
        db = self._session_factory()
        try:
            device = (
                db.query(Device)
                .filter(Device.id == target.device_id)
                .with_for_update()
                .first()
            )
            if device is None or device.booth_id != target.booth_id:
                self._logger.info(
                    "Dropping poll result for device %s: reassigned from booth %s to %s",
                    target.device_id, target.booth_id, device.booth_id if device else None,
                )
                return False
            controller = DeviceAccessController(db, target.tenant_id, clock=self._clock)
            controller.apply_report(device, report.lock_status, report.battery_level,
                                    controller.report_seen_at(report))
            db.commit()
            return True
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    async def _poll_device(self, semaphore: asyncio.Semaphore, gateway: LockGateway,
                           target: DeviceTarget) -> str:
        async with semaphore:
            try:
                report = await asyncio.wait_for(
                    asyncio.to_thread(gateway.status, target.external_id),
                    timeout=self._timeout,
                )
            except (DeviceTimeout, DeviceUnreachable, asyncio.TimeoutError) as e:
                self._logger.warning("Poll of device %s failed: %s", target.device_id, str(e) or "timeout")
                return "failed"
        applied = await asyncio.to_thread(self._apply, target, report)
        return "updated" if applied else "dropped"

    async def poll_once(self) -> PollSummary:
        summary = PollSummary()
        gateway = self._gateway_factory()
        if gateway is None:
            self._logger.debug("No lock gateway configured; skipping device poll")
            return summary
        try:
            targets = await asyncio.to_thread(self._load_targets)
            semaphore = asyncio.Semaphore(self._concurrency)
            results = await asyncio.gather(
                *(self._poll_device(semaphore, gateway, target) for target in targets),
                return_exceptions=True,
            )
        finally:
            gateway.close()

        outcomes = []
        for target, result in zip(targets, results):
            if isinstance(result, Exception):
                self._logger.error("Poll of device %s failed: %r", target.device_id, result)
                result = "failed"
            outcomes.append(result)

        summary.polled = len(outcomes)
        summary.updated = outcomes.count("updated")
        summary.dropped = outcomes.count("dropped")
        summary.failed = outcomes.count("failed")
        self._logger.info("Device poll finished: %s", summary)
        return summary

    async def run(self, stop_event: asyncio.Event, interval: float) -> None:
        while not stop_event.is_set():
            try:
                await self.poll_once()
            except Exception:
                self._logger.exception("Device poll failed")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue
