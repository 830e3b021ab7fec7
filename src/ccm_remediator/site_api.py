"""
Administrative site-assignment API.

The agent exposes site assignment through the Microsoft.SMS.Client COM
object. The workflow only depends on the SiteAssignmentApi protocol so it
can run against a fake in tests.
"""

import logging
from typing import Optional, Protocol

from .models import SiteCode
from .powershell import PowerShellError, PowerShellRunner, ps_quote

logger = logging.getLogger(__name__)


class SiteApiError(Exception):
    """Raised when a site-assignment API call fails."""


class SiteAssignmentApi(Protocol):
    """Site assignment surface of the management agent."""

    def set_assigned_site(self, code: str) -> None:
        ...

    def get_assigned_site(self) -> SiteCode:
        ...


class SmsClientApi:
    """SiteAssignmentApi backed by the agent's COM automation object."""

    PROG_ID = "Microsoft.SMS.Client"

    def __init__(self, runner: PowerShellRunner, timeout: Optional[int] = None):
        self.runner = runner
        self.timeout = timeout

    def _call(self, body: str) -> dict:
        script = f'''
$Result = @{{ Success = $false }}
try {{
    $Client = New-Object -ComObject {ps_quote(self.PROG_ID)} -ErrorAction Stop
{body}
    $Result.Success = $true
}} catch {{
    $Result.Error = $_.Exception.Message
}}
$Result | ConvertTo-Json -Compress
'''
        try:
            result = self.runner.run(script, timeout=self.timeout)
        except PowerShellError as e:
            raise SiteApiError(str(e))

        parsed = result.parsed if isinstance(result.parsed, dict) else {}
        if not result.success or not parsed.get("Success"):
            raise SiteApiError(result.error)
        return parsed

    def set_assigned_site(self, code: str) -> None:
        self._call(f"    $Client.SetAssignedSite({ps_quote(code)})")
        logger.debug(f"SetAssignedSite({code}) succeeded on {self.runner.target}")

    def get_assigned_site(self) -> SiteCode:
        parsed = self._call("    $Result.Value = [string]$Client.GetAssignedSite()")
        return SiteCode.of(parsed.get("Value"))
