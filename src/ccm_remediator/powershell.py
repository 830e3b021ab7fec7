"""
PowerShell execution transports.

Every endpoint interaction (registry, services, installer, COM client API)
is a PowerShell script. Scripts run either on the local machine through a
PowerShell subprocess or on a remote endpoint through WinRM.
"""

import base64
import json
import logging
import subprocess
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)


class PowerShellError(Exception):
    """Raised when a script cannot be executed at all (host missing, timeout, transport)."""


@dataclass
class ScriptResult:
    """Result of a PowerShell script execution."""
    status_code: int
    std_out: str = ""
    std_err: str = ""
    parsed: Any = None
    duration_seconds: float = 0.0
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def success(self) -> bool:
        return self.status_code == 0

    @property
    def error(self) -> str:
        """Best available error message for logging."""
        if self.std_err.strip():
            return self.std_err.strip()
        if isinstance(self.parsed, dict) and self.parsed.get("Error"):
            return str(self.parsed["Error"])
        return f"exit code {self.status_code}"


def ps_quote(value: str) -> str:
    """Quote a value as a single-quoted PowerShell string literal."""
    return "'" + str(value).replace("'", "''") + "'"


def _build_result(status_code: int, std_out: str, std_err: str, started: datetime) -> ScriptResult:
    result = ScriptResult(
        status_code=status_code,
        std_out=std_out,
        std_err=std_err,
        duration_seconds=(datetime.now(timezone.utc) - started).total_seconds(),
    )

    # Try to parse JSON output
    if std_out.strip():
        try:
            result.parsed = json.loads(std_out)
        except json.JSONDecodeError:
            result.parsed = None

    return result


class PowerShellRunner:
    """Base class for script transports."""

    target = "localhost"

    def run(self, script: str, timeout: Optional[int] = None) -> ScriptResult:
        """
        Execute a script and wait for it to finish.

        Args:
            script: PowerShell script text
            timeout: Seconds to wait (None = wait indefinitely)

        Returns:
            ScriptResult with exit code, output and parsed JSON

        Raises:
            PowerShellError: If the script could not be executed
        """
        raise NotImplementedError


class LocalPowerShellRunner(PowerShellRunner):
    """Run scripts with a local PowerShell host."""

    # Windows PowerShell writes redirected stdout in the OEM code page otherwise
    OUTPUT_ENCODING_PREAMBLE = "[Console]::OutputEncoding = [Text.Encoding]::UTF8\n"

    def __init__(self, executable: str = "powershell.exe"):
        self.executable = executable

    def build_command(self, script: str) -> list[str]:
        # -EncodedCommand takes base64 UTF-16LE and avoids all argument quoting
        script = self.OUTPUT_ENCODING_PREAMBLE + script
        encoded = base64.b64encode(script.encode("utf-16-le")).decode("ascii")
        return [
            self.executable,
            "-NoProfile",
            "-NonInteractive",
            "-ExecutionPolicy", "Bypass",
            "-EncodedCommand", encoded,
        ]

    def run(self, script: str, timeout: Optional[int] = None) -> ScriptResult:
        started = datetime.now(timezone.utc)
        try:
            completed = subprocess.run(
                self.build_command(script),
                capture_output=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            raise PowerShellError(f"Script timed out after {timeout}s")
        except OSError as e:
            raise PowerShellError(f"Cannot start {self.executable}: {e}")

        return _build_result(
            completed.returncode,
            completed.stdout.decode("utf-8", errors="replace") if completed.stdout else "",
            completed.stderr.decode("utf-8", errors="replace") if completed.stderr else "",
            started,
        )


class WinRMPowerShellRunner(PowerShellRunner):
    """
    Run scripts on a remote endpoint via WinRM.

    Uses the pywinrm library. Timeouts are governed by the WinRM session;
    the per-call timeout argument is accepted for interface compatibility.
    """

    def __init__(
        self,
        hostname: str,
        username: str,
        password: str,
        port: int = 5985,
        use_ssl: bool = False,
        verify_ssl: bool = True,
        transport: str = "ntlm",
    ):
        self.target = hostname
        self.hostname = hostname
        self.username = username
        self.password = password
        self.port = port
        self.use_ssl = use_ssl
        self.verify_ssl = verify_ssl
        self.transport = transport
        self._session = None

    def _get_session(self):
        """Get or create the WinRM session."""
        try:
            import winrm
        except ImportError:
            raise PowerShellError(
                "pywinrm is required for remote execution. "
                "Install with: pip install ccm-remediator[winrm]"
            )

        if self._session is None:
            protocol = "https" if self.use_ssl else "http"
            endpoint = f"{protocol}://{self.hostname}:{self.port}/wsman"
            self._session = winrm.Session(
                endpoint,
                auth=(self.username, self.password),
                transport=self.transport,
                server_cert_validation="validate" if self.verify_ssl else "ignore",
            )
        return self._session

    def run(self, script: str, timeout: Optional[int] = None) -> ScriptResult:
        started = datetime.now(timezone.utc)
        session = self._get_session()
        try:
            result = session.run_ps(script)
        except Exception as e:
            raise PowerShellError(f"WinRM execution on {self.hostname} failed: {e}")

        return _build_result(
            result.status_code,
            result.std_out.decode("utf-8", errors="replace") if result.std_out else "",
            result.std_err.decode("utf-8", errors="replace") if result.std_err else "",
            started,
        )
