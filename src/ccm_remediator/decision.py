"""
Compliance decision for the agent installation.

A fixed decision tree over the expected site code, the assigned site code,
the service state and the force-install flag. Each terminal branch writes
its own log line.
"""

from dataclasses import dataclass
from typing import Optional

from .models import DecisionReason, ServiceState, SiteCode
from .recorder import RunLog


@dataclass(frozen=True)
class Decision:
    """Outcome of the compliance evaluation."""
    passed: bool
    reason: DecisionReason


def evaluate(
    expected: SiteCode,
    assigned: SiteCode,
    service_state: ServiceState,
    force_install: bool = False,
    run_log: Optional[RunLog] = None,
) -> Decision:
    """
    Decide whether the endpoint needs remediation.

    Args:
        expected: Site code the agent must be assigned to
        assigned: Site code currently in the configuration store
        service_state: Agent service state
        force_install: Reinstall even if the endpoint is compliant
        run_log: Run log to narrate into

    Returns:
        Decision with passed flag and the branch that produced it
    """
    if run_log is None:
        run_log = RunLog()

    if expected.is_set and expected == assigned:
        run_log.log(f"Assigned site code {assigned} matches expected site code")

        if service_state == ServiceState.NOT_FOUND:
            run_log.log("Agent service not found; remediation required")
            return Decision(False, DecisionReason.SERVICE_NOT_FOUND)

        if service_state == ServiceState.RUNNING:
            if force_install:
                run_log.log("Agent service running but force install requested; remediation required")
                return Decision(False, DecisionReason.FORCE_INSTALL)
            run_log.log("Agent service running. No action required")
            return Decision(True, DecisionReason.COMPLIANT)

        run_log.log(f"Agent service exists but is not running (state: {service_state.value}); remediation required")
        return Decision(False, DecisionReason.SERVICE_NOT_RUNNING)

    if not assigned.is_set:
        run_log.log(f"No site code assigned (expected {expected}); remediation required")
        return Decision(False, DecisionReason.SITE_UNASSIGNED)

    run_log.log(f"Assigned site code {assigned} does not match expected {expected}; remediation required")
    return Decision(False, DecisionReason.SITE_MISMATCH)
