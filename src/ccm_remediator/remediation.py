"""
Agent remediation: reinstall, forced site assignment and final verification.

Steps mutate the ExecutionRecord passed to them and narrate into the run
log. No step raises on endpoint failures; every failure is logged and the
workflow continues so the record can report the real outcome.
"""

from dataclasses import dataclass
from typing import Optional

from .config import RemediatorSettings
from .models import ExecutionRecord, ServiceState
from .powershell import PowerShellError, PowerShellRunner, ps_quote
from .recorder import RunLog
from .site_api import SiteApiError, SiteAssignmentApi
from .state import (
    ServiceControlError,
    path_exists,
    read_assigned_site_code,
    read_service_state,
    restart_service,
)


@dataclass
class EndpointContext:
    """Collaborators shared by the remediation steps."""
    runner: PowerShellRunner
    settings: RemediatorSettings
    site_api: SiteAssignmentApi
    run_log: RunLog


@dataclass
class InstallerOutcome:
    """Result of one installer invocation."""
    success: bool
    exit_code: Optional[int] = None
    error: Optional[str] = None


def run_installer(runner: PowerShellRunner, path: str, arguments: str) -> InstallerOutcome:
    """
    Start the setup binary and wait for it to exit.

    There is no timeout: a hanging installer blocks the run.
    """
    argument_list = f" -ArgumentList {ps_quote(arguments)}" if arguments.strip() else ""
    script = f'''
$Result = @{{ Success = $false; ExitCode = $null }}
try {{
    $Process = Start-Process -FilePath {ps_quote(path)}{argument_list} -Wait -PassThru -NoNewWindow -ErrorAction Stop
    $Result.ExitCode = $Process.ExitCode
    $Result.Success = ($Process.ExitCode -eq 0)
    if (-not $Result.Success) {{
        $Result.Error = "Installer exited with code $($Process.ExitCode)"
    }}
}} catch {{
    $Result.Error = $_.Exception.Message
}}
$Result | ConvertTo-Json -Compress
'''
    try:
        result = runner.run(script, timeout=None)
    except PowerShellError as e:
        return InstallerOutcome(success=False, error=str(e))

    parsed = result.parsed if isinstance(result.parsed, dict) else {}
    if result.success and parsed.get("Success"):
        return InstallerOutcome(success=True, exit_code=parsed.get("ExitCode"))
    return InstallerOutcome(
        success=False,
        exit_code=parsed.get("ExitCode"),
        error=parsed.get("Error") or result.error,
    )


def resolve_installer_path(ctx: EndpointContext, remote_path: str) -> str:
    """Prefer the setup binary cached on the endpoint, else the remote share."""
    local_path = ctx.settings.local_installer_path
    if path_exists(ctx.runner, local_path, timeout=ctx.settings.query_timeout_seconds):
        ctx.run_log.log(f"Using local installer {local_path}")
        return local_path

    ctx.run_log.log(f"Local installer not found; using remote installer {remote_path}")
    return remote_path


def uninstall_agent(record: ExecutionRecord, ctx: EndpointContext, remote_path: str) -> bool:
    """
    Uninstall the existing agent before reinstalling.

    Skipped when the remote installer is unreachable, since the local copy
    may be removed by the uninstall, or when no agent service exists.

    Returns:
        True if an uninstall ran and succeeded
    """
    if not path_exists(ctx.runner, remote_path, timeout=ctx.settings.query_timeout_seconds):
        ctx.run_log.warning(
            f"Remote installer {remote_path} is unreachable; skipping uninstall"
        )
        return False

    if record.service_state == ServiceState.NOT_FOUND:
        ctx.run_log.log("No existing agent service found; skipping uninstall")
        return False

    ctx.run_log.log(f"Uninstalling agent with {record.installer_path}")
    outcome = run_installer(ctx.runner, record.installer_path, ctx.settings.uninstall_argument)
    if not outcome.success:
        ctx.run_log.error(f"Agent uninstall failed: {outcome.error}")
        return False

    ctx.run_log.log("Agent uninstall completed")
    # Uninstall may delete the local setup binary
    record.installer_path = remote_path
    return True


def install_agent(record: ExecutionRecord, ctx: EndpointContext) -> bool:
    """Install the agent with the configured setup arguments."""
    ctx.run_log.log(f"Installing agent: {record.installer_path} {record.install_arguments}")
    outcome = run_installer(ctx.runner, record.installer_path, record.install_arguments)
    if not outcome.success:
        ctx.run_log.error(f"Agent install failed: {outcome.error}")
        return False

    ctx.run_log.log("Agent install completed")
    return True


def remediate(record: ExecutionRecord, ctx: EndpointContext, remote_path: str) -> None:
    """Run the optional uninstall and the install."""
    record.installer_path = resolve_installer_path(ctx, remote_path)

    if record.uninstall_first:
        uninstall_agent(record, ctx, remote_path)

    install_agent(record, ctx)


def recheck_state(record: ExecutionRecord, ctx: EndpointContext) -> None:
    """Re-read site code and service state into the record."""
    record.current_site_code = read_assigned_site_code(ctx.runner, ctx.settings)
    record.service_state = read_service_state(
        ctx.runner,
        ctx.settings.service_name,
        timeout=ctx.settings.query_timeout_seconds,
    )
    ctx.run_log.log(
        f"Current state: site code {record.current_site_code}, "
        f"service {record.service_state.value}"
    )


def reassign_site(record: ExecutionRecord, ctx: EndpointContext) -> bool:
    """
    Force the expected site assignment when the agent runs on the wrong site.

    The assignment call and the service restart are attempted independently.

    Returns:
        True if the step ran
    """
    if record.current_site_code == record.expected_site_code:
        return False
    if record.service_state != ServiceState.RUNNING:
        ctx.run_log.log("Agent service not running; cannot force site assignment")
        return False

    expected = record.expected_site_code.value
    ctx.run_log.log(f"Forcing site assignment to {expected}")
    try:
        ctx.site_api.set_assigned_site(expected)
        ctx.run_log.log(f"Site assignment set to {expected}")
    except SiteApiError as e:
        ctx.run_log.error(f"Site assignment failed: {e}")

    try:
        restart_service(ctx.runner, ctx.settings.service_name, timeout=ctx.settings.query_timeout_seconds)
        ctx.run_log.log(f"Restarted service {ctx.settings.service_name}")
    except ServiceControlError as e:
        ctx.run_log.error(f"Service restart failed: {e}")

    recheck_state(record, ctx)
    return True


def verify_remediation(record: ExecutionRecord, ctx: EndpointContext) -> bool:
    """
    Final check after remediation.

    The configuration store reading is confirmed against the live agent
    through the site-assignment API before the run counts as remediated.
    """
    if not (
        record.current_site_code == record.expected_site_code
        and record.service_state == ServiceState.RUNNING
    ):
        ctx.run_log.warning(
            f"Remediation unsuccessful: site code {record.current_site_code}, "
            f"service {record.service_state.value}"
        )
        record.remediated = False
        return False

    try:
        api_site = ctx.site_api.get_assigned_site()
    except SiteApiError as e:
        ctx.run_log.warning(f"Could not confirm site assignment through the agent API: {e}")
        api_site = None

    if api_site is not None and api_site.is_set:
        record.current_site_code = api_site
        if api_site != record.expected_site_code:
            ctx.run_log.warning(
                f"Agent reports site {api_site} but expected {record.expected_site_code}; "
                "remediation unsuccessful"
            )
            record.remediated = False
            return False
    elif api_site is not None:
        ctx.run_log.warning("Agent API reported no site assignment; using configuration store value")

    record.remediated = True
    ctx.run_log.log(f"Remediation successful: agent assigned to {record.current_site_code} and running")
    return True
