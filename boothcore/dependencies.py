from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from boothcore.database import get_db
from boothcore.tenants import Clock, TenantPolicy, load_policy, utc_now


def get_tenant_id(x_tenant_id: int = Header(..., description="Tenant resolved by the auth layer")) -> int:
    """Tenant identity forwarded by the upstream auth collaborator"""
    return x_tenant_id


def get_user_id(x_user_id: Optional[int] = Header(None, description="Authenticated user, absent for guests")) -> Optional[int]:
    return x_user_id


def get_clock() -> Clock:
    """Overridden in tests with a frozen clock"""
    return utc_now


def get_policy(
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
) -> TenantPolicy:
    return load_policy(db, tenant_id)

