"""Shared fixtures: an in-memory Windows endpoint and site-assignment API."""

import json
import re
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

import pytest

from ccm_remediator.config import RemediatorSettings
from ccm_remediator.models import SiteCode
from ccm_remediator.powershell import PowerShellRunner, ScriptResult
from ccm_remediator.site_api import SiteApiError

LOCAL_INSTALLER = r"C:\Windows\ccmsetup\ccmsetup.exe"
REMOTE_INSTALLER = r"\\sccm01\Client\ccmsetup.exe"


def script_result(payload, status_code: int = 0) -> ScriptResult:
    """ScriptResult carrying a JSON payload the way ConvertTo-Json emits it."""
    std_out = json.dumps(payload)
    return ScriptResult(status_code=status_code, std_out=std_out, parsed=payload)


def _quoted_arg(script: str, flag: str) -> Optional[str]:
    match = re.search(rf"{flag} '((?:[^']|'')*)'", script)
    return match.group(1).replace("''", "'") if match else None


class FakeEndpoint(PowerShellRunner):
    """
    Answers the remediator's PowerShell scripts from in-memory state.

    Installer runs are recorded; on_install / on_uninstall callbacks let a
    test decide what the installer does to the endpoint.
    """

    def __init__(
        self,
        site_code: Optional[str] = None,
        service_status: Optional[str] = None,
        existing_paths: Tuple[str, ...] = (),
        hostname: str = "WS01",
        domain: str = "corp.local",
    ):
        self.target = hostname
        self.site_code = site_code
        self.service_status = service_status
        self.existing_paths = set(existing_paths)
        self.hostname = hostname
        self.domain = domain

        self.installer_calls: List[Tuple[str, Optional[str]]] = []
        self.install_exit_code = 0
        self.uninstall_exit_code = 0
        self.on_install: Optional[Callable[["FakeEndpoint"], None]] = None
        self.on_uninstall: Optional[Callable[["FakeEndpoint"], None]] = None
        self.restart_calls = 0
        self.restart_fails = False
        self.scripts: List[str] = []

    @property
    def install_calls(self):
        return [c for c in self.installer_calls if c[1] != "/uninstall"]

    @property
    def uninstall_calls(self):
        return [c for c in self.installer_calls if c[1] == "/uninstall"]

    def run(self, script: str, timeout: Optional[int] = None) -> ScriptResult:
        self.scripts.append(script)

        if "Start-Process" in script:
            return self._run_installer(script)
        if "Restart-Service" in script:
            self.restart_calls += 1
            if self.restart_fails or self.service_status is None:
                return script_result({"Success": False, "Error": "Cannot restart service"})
            self.service_status = "Running"
            return script_result({"Success": True, "Status": "Running"})
        if "Get-ItemProperty" in script:
            if self.site_code is None:
                return script_result({"Found": False, "Value": None, "Error": "Property not found"})
            return script_result({"Found": True, "Value": self.site_code})
        if "Get-Service" in script:
            if self.service_status is None:
                return script_result({"Exists": False, "Status": None})
            return script_result({"Exists": True, "Status": self.service_status})
        if "Win32_ComputerSystem" in script:
            return script_result({"Hostname": self.hostname, "Domain": self.domain})
        if "Test-Path" in script:
            path = _quoted_arg(script, "-LiteralPath")
            return script_result({"Exists": path in self.existing_paths})

        raise AssertionError(f"Unexpected script: {script}")

    def _run_installer(self, script: str) -> ScriptResult:
        path = _quoted_arg(script, "-FilePath")
        arguments = _quoted_arg(script, "-ArgumentList")
        self.installer_calls.append((path, arguments))

        if path not in self.existing_paths:
            return script_result({
                "Success": False,
                "ExitCode": None,
                "Error": f"This command cannot be run because the file {path} was not found",
            })

        uninstall = arguments == "/uninstall"
        exit_code = self.uninstall_exit_code if uninstall else self.install_exit_code
        if exit_code == 0:
            callback = self.on_uninstall if uninstall else self.on_install
            if callback:
                callback(self)
            return script_result({"Success": True, "ExitCode": 0})
        return script_result({
            "Success": False,
            "ExitCode": exit_code,
            "Error": f"Installer exited with code {exit_code}",
        })


class FakeSiteApi:
    """In-memory SiteAssignmentApi bound to a FakeEndpoint."""

    def __init__(
        self,
        endpoint: Optional[FakeEndpoint] = None,
        fail_set: bool = False,
        fail_get: bool = False,
        reported: Optional[str] = None,
    ):
        self.endpoint = endpoint
        self.fail_set = fail_set
        self.fail_get = fail_get
        self.reported = reported
        self.set_calls: List[str] = []
        self.get_calls = 0

    def set_assigned_site(self, code: str) -> None:
        self.set_calls.append(code)
        if self.fail_set:
            raise SiteApiError("Access is denied")
        if self.endpoint is not None:
            self.endpoint.site_code = code

    def get_assigned_site(self) -> SiteCode:
        self.get_calls += 1
        if self.fail_get:
            raise SiteApiError("Class not registered")
        if self.reported is not None:
            return SiteCode.of(self.reported)
        return SiteCode.of(self.endpoint.site_code if self.endpoint else None)


class StepClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2026, 10, 18, 8, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + timedelta(seconds=1)
        return value


@pytest.fixture
def settings():
    return RemediatorSettings()


@pytest.fixture
def clock():
    return StepClock()
