from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from boothcore.database import get_db
from boothcore.dependencies import get_clock, get_tenant_id
from boothcore.devices.controller import DeviceAccessController
from boothcore.devices.gateway import get_lock_gateway
from boothcore.devices.schemas import DeviceResponse, TelemetryPayload

router = APIRouter()


def get_controller(
    tenant_id: int = Depends(get_tenant_id),
    gateway = Depends(get_lock_gateway),
    clock = Depends(get_clock),
    db: Session = Depends(get_db)
) -> DeviceAccessController:
    return DeviceAccessController(db, tenant_id, gateway=gateway, clock=clock)


def to_response(controller: DeviceAccessController, device) -> DeviceResponse:
    response = DeviceResponse.model_validate(device)
    response.is_online = controller.is_online(device)
    return response


@router.post("/telemetry", response_model=DeviceResponse)
def ingest_telemetry(
    payload: TelemetryPayload,
    controller: DeviceAccessController = Depends(get_controller)
):
    """Telemetry push from the IoT bridge"""
    return to_response(controller, controller.ingest_telemetry(payload))

@router.get("/{device_id}", response_model=DeviceResponse)
def get_device(
    device_id: int,
    controller: DeviceAccessController = Depends(get_controller)
):
    return to_response(controller, controller.get_device(device_id))

@router.post("/{device_id}/lock", response_model=DeviceResponse)
def lock_device(
    device_id: int,
    controller: DeviceAccessController = Depends(get_controller)
):
    return to_response(controller, controller.lock(device_id))

@router.post("/{device_id}/unlock", response_model=DeviceResponse)
def unlock_device(
    device_id: int,
    controller: DeviceAccessController = Depends(get_controller)
):
    """Unlock a booth's lock; requires an active booking covering now"""
    return to_response(controller, controller.unlock(device_id))

@router.post("/{device_id}/sync", response_model=DeviceResponse)
def sync_device(
    device_id: int,
    controller: DeviceAccessController = Depends(get_controller)
):
    """Pull the lock's current state through the gateway"""
    return to_response(controller, controller.sync(device_id))
