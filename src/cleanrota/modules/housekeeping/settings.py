"""Tenant housekeeping settings, validated and re-read on every call."""

from __future__ import annotations

from dataclasses import dataclass
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from cleanrota.errors import ConfigurationError
from cleanrota.models.tenant import Tenant
from cleanrota.timeutil import get_zone


@dataclass(frozen=True)
class TenantSettings:
    stay_over_interval: int
    deep_cleaning_interval: int
    timezone: str

    def __post_init__(self) -> None:
        if not isinstance(self.stay_over_interval, int) or self.stay_over_interval <= 0:
            raise ConfigurationError(
                f"stay_over_interval must be a positive integer, got {self.stay_over_interval!r}"
            )
        if not isinstance(self.deep_cleaning_interval, int) or self.deep_cleaning_interval <= 0:
            raise ConfigurationError(
                f"deep_cleaning_interval must be a positive integer, got {self.deep_cleaning_interval!r}"
            )
        try:
            get_zone(self.timezone)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc

    @property
    def zone(self) -> ZoneInfo:
        return get_zone(self.timezone)


def load_tenant_settings(session: Session, tenant_id: int) -> TenantSettings:
    """Read the tenant's settings row. Missing values are a misconfiguration, not a default."""
    tenant = session.get(Tenant, tenant_id)
    if tenant is None:
        raise ConfigurationError(f"Tenant {tenant_id} not found")
    if tenant.stay_over_interval is None or tenant.deep_cleaning_interval is None or not tenant.timezone:
        raise ConfigurationError(f"Tenant {tenant_id} has incomplete housekeeping settings")
    return TenantSettings(
        stay_over_interval=tenant.stay_over_interval,
        deep_cleaning_interval=tenant.deep_cleaning_interval,
        timezone=tenant.timezone,
    )
