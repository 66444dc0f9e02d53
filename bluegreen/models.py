from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, computed_field, field_validator

from bluegreen.errors import InvalidPoolError


class Pool(str, Enum):
    BLUE = "blue"
    GREEN = "green"

    @property
    def other(self) -> "Pool":
        return Pool.GREEN if self is Pool.BLUE else Pool.BLUE

    @classmethod
    def parse(cls, value) -> "Pool":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidPoolError(value) from None

    @property
    def port_key(self) -> str:
        return f"{self.value.upper()}_APP_PORT"


class HealTarget(str, Enum):
    DYNAMIC = "dynamic"
    LEGACY = "legacy"


class DeploymentConfig(BaseModel):
    """A validated, point-in-time read of the persisted deployment record."""

    active_pool: Pool
    nginx_port: int
    blue_app_port: int
    green_app_port: int
    app_internal_port: Optional[int] = None

    @field_validator("active_pool", mode="before")
    @classmethod
    def _normalise_pool(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @classmethod
    def from_record(cls, record: dict[str, str]) -> "DeploymentConfig":
        return cls(
            active_pool=record.get("ACTIVE_POOL"),
            nginx_port=record.get("NGINX_PORT"),
            blue_app_port=record.get("BLUE_APP_PORT"),
            green_app_port=record.get("GREEN_APP_PORT"),
            app_internal_port=record.get("APP_INTERNAL_PORT") or None,
        )

    def port_for(self, pool: Pool) -> int:
        return self.blue_app_port if pool is Pool.BLUE else self.green_app_port


class SwitchResult(BaseModel):
    changed: bool
    previous: Pool
    active: Pool
    message: str


class ChaosResult(BaseModel):
    pool: Pool
    port: int
    action: str
    acknowledged: bool
    status_code: Optional[int] = None
    message: str


class RoutingObservation(BaseModel):
    """What the proxy (or a pool, addressed directly) reported for one request."""

    status_code: int
    pool: Optional[str] = None
    release: Optional[str] = None


class PoolHealth(BaseModel):
    pool: Pool
    port: int
    healthy: bool
    status_code: Optional[int] = None
    detail: Optional[str] = None


class StatusView(BaseModel):
    active_pool: Pool
    nginx_port: int
    containers: list[str] = Field(default_factory=list)
    containers_error: Optional[str] = None
    observed_pool: str = "unknown"
    observed_release: Optional[str] = None
    observed_status: Optional[int] = None
    probe_error: Optional[str] = None

    @computed_field
    @property
    def drift(self) -> bool:
        return self.observed_pool != "unknown" and self.observed_pool != self.active_pool.value


class PhaseReport(BaseModel):
    name: str
    expected_pool: Pool
    served: dict[str, int] = Field(default_factory=dict)
    errors: int = 0
    converged: bool = False
    elapsed: float = 0.0


class DrillReport(BaseModel):
    active_pool: Pool
    backup_pool: Pool
    phases: list[PhaseReport] = Field(default_factory=list)

    @computed_field
    @property
    def passed(self) -> bool:
        return bool(self.phases) and all(p.converged for p in self.phases)
