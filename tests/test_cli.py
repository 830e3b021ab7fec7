"""Tests for the command-line entry point (cli.py)."""

import json
from unittest.mock import patch

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from ccm_remediator.cli import (
    EXIT_OK,
    EXIT_REMEDIATION_FAILED,
    EXIT_USAGE,
    build_parser,
    build_runner,
    exit_code_for,
    main,
)
from ccm_remediator.config import RemediatorSettings
from ccm_remediator.crypto import generate_keypair, verify_record
from ccm_remediator.models import ExecutionRecord
from ccm_remediator.powershell import LocalPowerShellRunner, WinRMPowerShellRunner

BASE_ARGS = [
    "--site-code", "abc",
    "--management-point", "mp01.corp.local",
    "--installer-path", r"\\sccm01\Client\ccmsetup.exe",
]


def _record(passed, remediated=False):
    return ExecutionRecord(
        expected_site_code="ABC",
        management_point="mp01.corp.local",
        passed=passed,
        remediated=remediated,
    )


class TestExitCodes:

    def test_passed(self):
        assert exit_code_for(_record(True)) == EXIT_OK

    def test_remediated(self):
        assert exit_code_for(_record(False, remediated=True)) == EXIT_OK

    def test_remediation_failed(self):
        assert exit_code_for(_record(False)) == EXIT_REMEDIATION_FAILED

    def test_unknown(self):
        assert exit_code_for(_record(None)) == EXIT_REMEDIATION_FAILED


class TestMain:

    def test_emits_record_on_stdout(self, capsys):
        with patch("ccm_remediator.cli.run_remediation", return_value=_record(True)) as mock_run:
            code = main(BASE_ARGS)

        assert code == EXIT_OK
        output = json.loads(capsys.readouterr().out)
        assert output["expected_site_code"] == "ABC"
        assert output["passed"] is True

        options = mock_run.call_args.args[0]
        assert options.site_code == "ABC"
        assert options.setup_arguments == "/mp:mp01.corp.local SMSSITECODE=ABC SMSMP=mp01.corp.local"
        assert options.uninstall_first is False
        assert isinstance(mock_run.call_args.kwargs["runner"], LocalPowerShellRunner)

    def test_flags_forwarded(self):
        args = BASE_ARGS + ["--uninstall-first", "--force-install", "--setup-args", "SMSSITECODE=ABC"]
        with patch("ccm_remediator.cli.run_remediation", return_value=_record(False, True)) as mock_run:
            code = main(args)

        options = mock_run.call_args.args[0]
        assert code == EXIT_OK
        assert options.uninstall_first is True
        assert options.force_install is True
        assert options.setup_arguments == "SMSSITECODE=ABC"

    def test_failed_remediation_exit_code(self, capsys):
        with patch("ccm_remediator.cli.run_remediation", return_value=_record(False)):
            assert main(BASE_ARGS) == EXIT_REMEDIATION_FAILED
        assert json.loads(capsys.readouterr().out)["remediated"] is False

    def test_invalid_site_code(self, capsys):
        with patch("ccm_remediator.cli.run_remediation") as mock_run:
            code = main(["--site-code", "TOOLONG", "--management-point", "mp", "--installer-path", "x"])

        assert code == EXIT_USAGE
        mock_run.assert_not_called()
        assert "Invalid arguments" in capsys.readouterr().err

    def test_missing_required_argument(self):
        with pytest.raises(SystemExit) as exc:
            main(["--site-code", "ABC"])
        assert exc.value.code == EXIT_USAGE

    def test_signed_record(self, tmp_path, capsys):
        private_bytes, public_bytes = generate_keypair()
        key_path = tmp_path / "signing.key"
        key_path.write_bytes(private_bytes)

        with patch("ccm_remediator.cli.run_remediation", return_value=_record(True)):
            main(BASE_ARGS + ["--signing-key", str(key_path), "--pretty"])

        output = json.loads(capsys.readouterr().out)
        assert verify_record(output, public_bytes) is True

    def test_bad_signing_key(self, tmp_path, capsys):
        with patch("ccm_remediator.cli.run_remediation") as mock_run:
            code = main(BASE_ARGS + ["--signing-key", str(tmp_path / "absent.key")])

        assert code == EXIT_USAGE
        mock_run.assert_not_called()

    def test_encrypted_signing_key(self, tmp_path, capsys):
        key_path = tmp_path / "encrypted.pem"
        key_path.write_bytes(Ed25519PrivateKey.generate().private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.BestAvailableEncryption(b"secret"),
        ))

        with patch("ccm_remediator.cli.run_remediation") as mock_run:
            code = main(BASE_ARGS + ["--signing-key", str(key_path)])

        assert code == EXIT_USAGE
        assert "Failed to load private key" in capsys.readouterr().err
        mock_run.assert_not_called()


class TestBuildRunner:

    def test_local_by_default(self):
        args = build_parser().parse_args(BASE_ARGS)
        runner = build_runner(args, RemediatorSettings(powershell_executable="pwsh"))

        assert isinstance(runner, LocalPowerShellRunner)
        assert runner.executable == "pwsh"

    def test_remote_requires_credentials(self):
        args = build_parser().parse_args(BASE_ARGS + ["--computer", "ws01"])
        with pytest.raises(ValueError, match="requires"):
            build_runner(args, RemediatorSettings(winrm_username=None, winrm_password=None))

    def test_remote_runner(self):
        args = build_parser().parse_args(BASE_ARGS + ["--computer", "ws01", "--username", "CORP\\admin"])
        settings = RemediatorSettings(winrm_password="secret", winrm_use_ssl=True, winrm_port=5986)
        runner = build_runner(args, settings)

        assert isinstance(runner, WinRMPowerShellRunner)
        assert runner.target == "ws01"
        assert runner.username == "CORP\\admin"
        assert runner.port == 5986
        assert runner.use_ssl is True
