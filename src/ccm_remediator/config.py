"""
Configuration for the CCM client remediator.

Two layers:
- RemediatorSettings: endpoint constants and transport defaults, overridable
  through CCM_REMEDIATOR_* environment variables.
- RunOptions: the validated per-run parameters given on the command line.
"""

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


SITE_CODE_PATTERN = re.compile(r"^[A-Z0-9]{3}$")


class RemediatorSettings(BaseSettings):
    """Endpoint constants and transport defaults."""

    # ========================================================================
    # Agent
    # ========================================================================

    service_name: str = Field(
        default="CcmExec",
        description="Windows service name of the management agent"
    )
    site_code_registry_key: str = Field(
        default=r"HKLM:\SOFTWARE\Microsoft\SMS\Mobile Client",
        description="Registry key holding the assigned site code"
    )
    site_code_registry_value: str = Field(
        default="AssignedSiteCode",
        description="Registry value name of the assigned site code"
    )
    local_installer_path: str = Field(
        default=r"C:\Windows\ccmsetup\ccmsetup.exe",
        description="Setup binary cached on the endpoint by a previous install"
    )
    uninstall_argument: str = Field(
        default="/uninstall",
        description="Installer directive that removes the agent"
    )

    # ========================================================================
    # PowerShell Transport
    # ========================================================================

    powershell_executable: str = Field(
        default="powershell.exe",
        description="PowerShell host used for local execution"
    )
    query_timeout_seconds: int = Field(
        default=60,
        ge=5,
        le=3600,
        description="Timeout for state queries (installer runs are unbounded)"
    )

    # ========================================================================
    # WinRM (remote endpoint)
    # ========================================================================

    winrm_port: int = Field(default=5985, description="WinRM port (5986 for HTTPS)")
    winrm_use_ssl: bool = False
    winrm_verify_ssl: bool = True
    winrm_transport: str = Field(default="ntlm", description="ntlm, kerberos or credssp")
    winrm_username: Optional[str] = None
    winrm_password: Optional[str] = None

    # ========================================================================
    # Logging
    # ========================================================================

    log_level: str = Field(default="INFO", description="Diagnostic log level")

    model_config = SettingsConfigDict(
        env_prefix="CCM_REMEDIATOR_",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        v = v.upper()
        if v not in ["DEBUG", "INFO", "WARNING", "ERROR"]:
            raise ValueError("log_level must be DEBUG, INFO, WARNING, or ERROR")
        return v

    @field_validator("winrm_transport")
    @classmethod
    def validate_winrm_transport(cls, v):
        if v not in ["ntlm", "kerberos", "credssp"]:
            raise ValueError("winrm_transport must be ntlm, kerberos or credssp")
        return v


def default_setup_arguments(site_code: str, management_point: str) -> str:
    """Build the default client setup parameter string."""
    return f"/mp:{management_point} SMSSITECODE={site_code} SMSMP={management_point}"


class RunOptions(BaseModel):
    """Validated parameters for one remediation run."""

    site_code: str = Field(..., description="Expected assigned site code")
    management_point: str = Field(..., description="Management point FQDN")
    installer_path: str = Field(..., description="Remote (UNC) path to the setup binary")
    setup_arguments: Optional[str] = Field(
        default=None,
        description="Setup parameter string (defaults to MP and site code)"
    )
    uninstall_first: bool = False
    force_install: bool = False

    model_config = ConfigDict(extra="forbid")

    @field_validator("site_code")
    @classmethod
    def validate_site_code(cls, v):
        v = v.strip().upper()
        if not SITE_CODE_PATTERN.match(v):
            raise ValueError("site_code must be 3 alphanumeric characters")
        return v

    @field_validator("management_point", "installer_path")
    @classmethod
    def validate_not_blank(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @model_validator(mode="after")
    def set_setup_arguments(self):
        """Fill in the default setup arguments when none were given."""
        if not self.setup_arguments:
            self.setup_arguments = default_setup_arguments(self.site_code, self.management_point)
        return self
