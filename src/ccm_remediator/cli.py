"""Command-line entry point for the CCM client remediator."""

import argparse
import json
import logging
import sys
from typing import List, Optional

from pydantic import ValidationError

from .config import RemediatorSettings, RunOptions
from .crypto import RecordSigner
from .engine import run_remediation
from .models import ExecutionRecord
from .powershell import LocalPowerShellRunner, PowerShellRunner, WinRMPowerShellRunner
from .site_api import SmsClientApi

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_REMEDIATION_FAILED = 1
EXIT_USAGE = 2


def setup_logging(log_level: str = "INFO") -> None:
    """Configure diagnostic logging on stderr; stdout carries only the record."""
    logging.basicConfig(
        level=getattr(logging, log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
        stream=sys.stderr,
    )


def exit_code_for(record: ExecutionRecord) -> int:
    """Map the record outcome to a process exit code."""
    if record.passed or record.remediated:
        return EXIT_OK
    return EXIT_REMEDIATION_FAILED


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ccm-remediator",
        description="Validate and remediate the Configuration Manager client on an endpoint",
    )
    parser.add_argument("--site-code", required=True,
                        help="Expected assigned site code (e.g. ABC)")
    parser.add_argument("--management-point", required=True,
                        help="Management point used by client setup")
    parser.add_argument("--installer-path", required=True,
                        help=r"Remote path to ccmsetup.exe (e.g. \\server\share\ccmsetup.exe)")
    parser.add_argument("--setup-args", default=None,
                        help="Setup parameters (default: /mp:<MP> SMSSITECODE=<SITE> SMSMP=<MP>)")
    parser.add_argument("--uninstall-first", action="store_true",
                        help="Uninstall the existing client before reinstalling")
    parser.add_argument("--force-install", action="store_true",
                        help="Reinstall even if the client is compliant")
    parser.add_argument("--computer", metavar="HOST", default=None,
                        help="Run against a remote endpoint over WinRM")
    parser.add_argument("--username", default=None,
                        help="WinRM username (DOMAIN\\user); password from CCM_REMEDIATOR_WINRM_PASSWORD")
    parser.add_argument("--signing-key", metavar="PATH", default=None,
                        help="Ed25519 private key used to sign the record")
    parser.add_argument("--log-level", default=None,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Diagnostic log level (stderr)")
    parser.add_argument("--pretty", action="store_true",
                        help="Indent the JSON record")
    return parser


def build_runner(args: argparse.Namespace, settings: RemediatorSettings) -> PowerShellRunner:
    """
    Pick the transport for the endpoint.

    Raises:
        ValueError: If remote execution is requested without credentials
    """
    if not args.computer:
        return LocalPowerShellRunner(settings.powershell_executable)

    username = args.username or settings.winrm_username
    if not username or not settings.winrm_password:
        raise ValueError(
            "Remote execution requires --username (or CCM_REMEDIATOR_WINRM_USERNAME) "
            "and CCM_REMEDIATOR_WINRM_PASSWORD"
        )

    return WinRMPowerShellRunner(
        hostname=args.computer,
        username=username,
        password=settings.winrm_password,
        port=settings.winrm_port,
        use_ssl=settings.winrm_use_ssl,
        verify_ssl=settings.winrm_verify_ssl,
        transport=settings.winrm_transport,
    )


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = RemediatorSettings()
    except ValidationError as e:
        print(f"Invalid environment configuration: {e}", file=sys.stderr)
        return EXIT_USAGE

    setup_logging(args.log_level or settings.log_level)

    try:
        options = RunOptions(
            site_code=args.site_code,
            management_point=args.management_point,
            installer_path=args.installer_path,
            setup_arguments=args.setup_args,
            uninstall_first=args.uninstall_first,
            force_install=args.force_install,
        )
    except ValidationError as e:
        print(f"Invalid arguments: {e}", file=sys.stderr)
        return EXIT_USAGE

    signer = None
    try:
        runner = build_runner(args, settings)
        if args.signing_key:
            signer = RecordSigner(args.signing_key)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE

    record = run_remediation(
        options,
        runner=runner,
        site_api=SmsClientApi(runner, timeout=settings.query_timeout_seconds),
        settings=settings,
    )

    if signer:
        signer.sign_record(record)

    print(json.dumps(record.model_dump(mode="json"), indent=2 if args.pretty else None))
    return exit_code_for(record)


if __name__ == "__main__":
    sys.exit(main())
