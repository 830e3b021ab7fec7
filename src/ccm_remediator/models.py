"""
Data models for the CCM client remediator.

Defines the typed state values read from the endpoint and the execution
record emitted at the end of every run.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


# ============================================================================
# Endpoint State Values
# ============================================================================


@dataclass(frozen=True)
class SiteCode:
    """
    Assigned site code, either unset or a normalized value.

    Values are stripped and upper-cased so that "abc " and "ABC" compare
    equal. An empty string is treated as unset.
    """

    value: Optional[str] = None

    def __post_init__(self):
        if self.value is not None:
            normalized = self.value.strip().upper()
            object.__setattr__(self, "value", normalized or None)

    @classmethod
    def unset(cls) -> "SiteCode":
        return cls(None)

    @classmethod
    def of(cls, value: Optional[str]) -> "SiteCode":
        return cls(value)

    @property
    def is_set(self) -> bool:
        return self.value is not None

    def __str__(self) -> str:
        return self.value if self.value is not None else "<unset>"


class ServiceState(str, Enum):
    """Agent service state as reported by the service controller."""
    NOT_FOUND = "not_found"
    STOPPED = "stopped"
    RUNNING = "running"
    OTHER = "other"


class DecisionReason(str, Enum):
    """Terminal branch of the compliance decision."""
    COMPLIANT = "compliant"
    FORCE_INSTALL = "force_install"
    SERVICE_NOT_FOUND = "service_not_found"
    SERVICE_NOT_RUNNING = "service_not_running"
    SITE_MISMATCH = "site_mismatch"
    SITE_UNASSIGNED = "site_unassigned"


# ============================================================================
# Run Log
# ============================================================================


class LogEntry(BaseModel):
    """Single timestamped line of the run log."""

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the entry was written (UTC)"
    )
    message: str = Field(..., description="Log message")

    def render(self) -> str:
        return f"[{self.timestamp.isoformat()}] {self.message}"


# ============================================================================
# Execution Record
# ============================================================================


class ExecutionRecord(BaseModel):
    """
    Audit record for a single remediation run.

    Created at the start of a run, updated by each step and serialized to
    stdout once the run ends.
    """

    # ========================================================================
    # Timestamps & Context
    # ========================================================================

    start_time: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Run start time (UTC)"
    )
    end_time: Optional[datetime] = Field(
        default=None,
        description="Run end time (UTC)"
    )
    hostname: Optional[str] = Field(
        default=None,
        description="Endpoint computer name"
    )
    domain: Optional[str] = Field(
        default=None,
        description="Endpoint domain"
    )

    # ========================================================================
    # Expected Configuration
    # ========================================================================

    expected_site_code: SiteCode = Field(..., description="Site the agent must report to")
    management_point: str = Field(..., description="Management point for client setup")
    installer_path: Optional[str] = Field(
        default=None,
        description="Installer binary in use (resolved)"
    )
    uninstall_first: bool = False
    force_install: bool = False
    install_arguments: str = ""

    # ========================================================================
    # Observed State
    # ========================================================================

    initial_site_code: SiteCode = Field(default_factory=SiteCode.unset)
    current_site_code: SiteCode = Field(default_factory=SiteCode.unset)
    service_state: ServiceState = ServiceState.NOT_FOUND

    # ========================================================================
    # Outcome
    # ========================================================================

    passed: Optional[bool] = Field(
        default=None,
        description="Compliance decision (None until evaluated)"
    )
    decision_reason: Optional[DecisionReason] = None
    remediated: bool = False
    log: List[str] = Field(default_factory=list)

    # ========================================================================
    # Signature
    # ========================================================================

    signature: Optional[str] = Field(
        default=None,
        description="Hex Ed25519 signature over the unsigned record"
    )
    public_key: Optional[str] = Field(
        default=None,
        description="Hex Ed25519 public key of the signer"
    )

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        validate_assignment=True,
    )

    @field_validator("expected_site_code", "initial_site_code", "current_site_code", mode="before")
    @classmethod
    def coerce_site_code(cls, v: Any) -> SiteCode:
        if isinstance(v, SiteCode):
            return v
        return SiteCode.of(v)

    @field_serializer("expected_site_code", "initial_site_code", "current_site_code")
    def serialize_site_code(self, v: SiteCode) -> Optional[str]:
        return v.value

    def signable_payload(self) -> dict:
        """Record content covered by the signature."""
        return self.model_dump(mode="json", exclude={"signature", "public_key"})
