"""
Remediation workflow.

Runs the linear validation and repair flow against one endpoint:

1. Read the assigned site code and agent service state
2. Decide whether the endpoint passes
3. Reinstall the agent (optionally uninstalling first)
4. Re-read state and force the site assignment if the agent runs on the
   wrong site
5. Confirm the result and return the execution record

Every path returns a complete record; endpoint failures never escape.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from .config import RemediatorSettings, RunOptions
from .decision import evaluate
from .models import ExecutionRecord
from .powershell import PowerShellRunner
from .recorder import RunLog, finalize_record
from .remediation import (
    EndpointContext,
    reassign_site,
    recheck_state,
    remediate,
    verify_remediation,
)
from .site_api import SiteAssignmentApi
from .state import read_assigned_site_code, read_domain_context, read_service_state

logger = logging.getLogger(__name__)


def run_remediation(
    options: RunOptions,
    runner: PowerShellRunner,
    site_api: SiteAssignmentApi,
    settings: Optional[RemediatorSettings] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> ExecutionRecord:
    """
    Validate the agent installation and remediate it if needed.

    Args:
        options: Validated run parameters
        runner: PowerShell transport for the endpoint
        site_api: Site-assignment API of the agent
        settings: Endpoint constants (defaults from environment)
        clock: Time source for timestamps (UTC)

    Returns:
        Completed ExecutionRecord
    """
    settings = settings or RemediatorSettings()
    clock = clock or (lambda: datetime.now(timezone.utc))
    run_log = RunLog(clock=clock)
    ctx = EndpointContext(runner=runner, settings=settings, site_api=site_api, run_log=run_log)

    record = ExecutionRecord(
        start_time=clock(),
        expected_site_code=options.site_code,
        management_point=options.management_point,
        installer_path=options.installer_path,
        uninstall_first=options.uninstall_first,
        force_install=options.force_install,
        install_arguments=options.setup_arguments,
    )

    try:
        _run(record, ctx, options)
    except Exception as e:
        logger.exception("Remediation workflow aborted")
        run_log.error(f"Remediation workflow aborted: {e}")

    return finalize_record(record, run_log, clock())


def _run(record: ExecutionRecord, ctx: EndpointContext, options: RunOptions) -> None:
    run_log = ctx.run_log
    timeout = ctx.settings.query_timeout_seconds

    run_log.log(f"Starting agent validation on {ctx.runner.target}")
    record.hostname, record.domain = read_domain_context(ctx.runner, timeout=timeout)
    run_log.log(f"Endpoint {record.hostname or 'unknown'} in domain {record.domain or 'unknown'}")

    record.initial_site_code = read_assigned_site_code(ctx.runner, ctx.settings)
    record.current_site_code = record.initial_site_code
    record.service_state = read_service_state(ctx.runner, ctx.settings.service_name, timeout=timeout)
    run_log.log(
        f"Expected site code {record.expected_site_code}, assigned site code "
        f"{record.initial_site_code}, service {ctx.settings.service_name} "
        f"{record.service_state.value}"
    )

    decision = evaluate(
        record.expected_site_code,
        record.initial_site_code,
        record.service_state,
        force_install=record.force_install,
        run_log=run_log,
    )
    record.passed = decision.passed
    record.decision_reason = decision.reason

    if decision.passed:
        return

    remediate(record, ctx, options.installer_path)
    recheck_state(record, ctx)
    reassign_site(record, ctx)
    verify_remediation(record, ctx)
