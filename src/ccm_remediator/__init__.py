"""CCM Client Remediator - validate and repair the Configuration Manager client"""

__version__ = "0.1.0"

from .config import RemediatorSettings, RunOptions
from .decision import Decision, evaluate
from .engine import run_remediation
from .models import DecisionReason, ExecutionRecord, LogEntry, ServiceState, SiteCode
from .powershell import (
    LocalPowerShellRunner,
    PowerShellError,
    PowerShellRunner,
    ScriptResult,
    WinRMPowerShellRunner,
)
from .recorder import RunLog
from .site_api import SiteApiError, SiteAssignmentApi, SmsClientApi

__all__ = [
    # Version
    "__version__",

    # Configuration
    "RemediatorSettings",
    "RunOptions",

    # Models
    "DecisionReason",
    "ExecutionRecord",
    "LogEntry",
    "ServiceState",
    "SiteCode",

    # Workflow
    "Decision",
    "evaluate",
    "run_remediation",
    "RunLog",

    # Transports
    "LocalPowerShellRunner",
    "PowerShellError",
    "PowerShellRunner",
    "ScriptResult",
    "WinRMPowerShellRunner",

    # Site Assignment API
    "SiteApiError",
    "SiteAssignmentApi",
    "SmsClientApi",
]
