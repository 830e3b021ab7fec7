"""
Endpoint state reader.

Reads the assigned site code from the registry and the agent service state
from the service controller. Read failures are normalized to absence: an
unreadable site code is unset, an unqueryable service is not found.
"""

import logging
from typing import Optional, Tuple

from .config import RemediatorSettings
from .models import ServiceState, SiteCode
from .powershell import PowerShellError, PowerShellRunner, ScriptResult, ps_quote

logger = logging.getLogger(__name__)


class ServiceControlError(Exception):
    """Raised when the agent service cannot be restarted."""


_SERVICE_STATUS_MAP = {
    "running": ServiceState.RUNNING,
    "stopped": ServiceState.STOPPED,
}


def _query(runner: PowerShellRunner, script: str, timeout: Optional[int]) -> Optional[dict]:
    """Run a query script and return its JSON object, or None on any failure."""
    try:
        result = runner.run(script, timeout=timeout)
    except PowerShellError as e:
        logger.debug(f"Query on {runner.target} failed: {e}")
        return None

    if not result.success or not isinstance(result.parsed, dict):
        logger.debug(f"Query on {runner.target} returned no usable output: {result.error}")
        return None
    return result.parsed


def read_assigned_site_code(
    runner: PowerShellRunner,
    settings: RemediatorSettings,
) -> SiteCode:
    """
    Read the assigned site code from the agent's registry key.

    Returns:
        SiteCode, unset when the key or value is missing or unreadable
    """
    script = f'''
$KeyPath = {ps_quote(settings.site_code_registry_key)}
$ValueName = {ps_quote(settings.site_code_registry_value)}
$Result = @{{ Found = $false; Value = $null }}

try {{
    $Item = Get-ItemProperty -Path $KeyPath -Name $ValueName -ErrorAction Stop
    $Result.Value = [string]$Item.$ValueName
    $Result.Found = $true
}} catch {{
    $Result.Error = $_.Exception.Message
}}

$Result | ConvertTo-Json -Compress
'''
    parsed = _query(runner, script, settings.query_timeout_seconds)
    if not parsed or not parsed.get("Found"):
        return SiteCode.unset()
    return SiteCode.of(parsed.get("Value"))


def read_service_state(
    runner: PowerShellRunner,
    name: str,
    timeout: Optional[int] = None,
) -> ServiceState:
    """
    Query the service controller for the agent service.

    Returns:
        ServiceState.NOT_FOUND when the service is not registered (or the
        query fails), otherwise the mapped status
    """
    script = f'''
$Result = @{{ Exists = $false; Status = $null }}
$Service = Get-Service -Name {ps_quote(name)} -ErrorAction SilentlyContinue
if ($Service) {{
    $Result.Exists = $true
    $Result.Status = $Service.Status.ToString()
}}
$Result | ConvertTo-Json -Compress
'''
    parsed = _query(runner, script, timeout)
    if not parsed or not parsed.get("Exists"):
        return ServiceState.NOT_FOUND

    status = str(parsed.get("Status") or "").lower()
    return _SERVICE_STATUS_MAP.get(status, ServiceState.OTHER)


def read_domain_context(
    runner: PowerShellRunner,
    timeout: Optional[int] = None,
) -> Tuple[Optional[str], Optional[str]]:
    """Return (hostname, domain) of the endpoint, None values when unknown."""
    script = r'''
$CS = Get-CimInstance -ClassName Win32_ComputerSystem -ErrorAction SilentlyContinue
$Domain = if ($CS) { $CS.Domain } else { $env:USERDNSDOMAIN }
@{ Hostname = $env:COMPUTERNAME; Domain = $Domain } | ConvertTo-Json -Compress
'''
    parsed = _query(runner, script, timeout)
    if not parsed:
        return None, None
    return parsed.get("Hostname") or None, parsed.get("Domain") or None


def path_exists(
    runner: PowerShellRunner,
    path: str,
    timeout: Optional[int] = None,
) -> bool:
    """Check that a file path (local or UNC) is reachable from the endpoint."""
    script = f'''
@{{ Exists = [bool](Test-Path -LiteralPath {ps_quote(path)} -PathType Leaf) }} | ConvertTo-Json -Compress
'''
    parsed = _query(runner, script, timeout)
    return bool(parsed and parsed.get("Exists"))


def restart_service(
    runner: PowerShellRunner,
    name: str,
    timeout: Optional[int] = None,
) -> ScriptResult:
    """
    Restart the agent service.

    Raises:
        ServiceControlError: If the restart failed or could not be attempted
    """
    script = f'''
$Result = @{{ Success = $false }}
try {{
    Restart-Service -Name {ps_quote(name)} -Force -ErrorAction Stop
    $Result.Status = (Get-Service -Name {ps_quote(name)}).Status.ToString()
    $Result.Success = $true
}} catch {{
    $Result.Error = $_.Exception.Message
}}
$Result | ConvertTo-Json -Compress
'''
    try:
        result = runner.run(script, timeout=timeout)
    except PowerShellError as e:
        raise ServiceControlError(str(e))

    parsed = result.parsed if isinstance(result.parsed, dict) else {}
    if not result.success or not parsed.get("Success"):
        raise ServiceControlError(result.error)
    return result
