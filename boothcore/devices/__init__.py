"""
Devices Module

Smart-lock access for booths.

Key Components:
- controller.py: DeviceAccessController (access codes, lock/unlock/sync, telemetry)
- gateway.py: LockGateway contract and the httpx-based HttpLockGateway
- poller.py: background DevicePoller with bounded concurrency
- router.py: FastAPI endpoints for devices and telemetry
- schemas.py: Pydantic models for device payloads
"""

from .router import router
from .controller import DeviceAccessController
from .gateway import HttpLockGateway, LockGateway, LockStatusReport, build_gateway
from .poller import DevicePoller, PollSummary

__all__ = [
    "router",
    "DeviceAccessController",
    "HttpLockGateway",
    "LockGateway",
    "LockStatusReport",
    "build_gateway",
    "DevicePoller",
    "PollSummary",
]
