"""Command-line entry point for zonectl."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .config import AppConfig, install_socks_proxy, load_config
from .controller import CONCURRENCY_MODES, RunOptions, configure_logging, initialize_providers, run_preview_push
from .credsfile import load_credentials
from .loader import load_config_file
from .models import ZonectlError
from .notifications import init_notifier
from .printer import ConsolePrinter
from .providers.bind import set_forced_serial
from .providers.registry import load_builtin_providers
from .validate import validate_config


def _build_parser() -> argparse.ArgumentParser:
    """Create the CLI parser."""
    parser = argparse.ArgumentParser(description="Reconcile DNS zones with their declared state.")
    parser.add_argument("--log-level", help="Override log level (default from config).")
    parser.add_argument("--config", help="Path to the desired-state IR (default ZONECTL_CONFIG).")
    parser.add_argument("--creds", help="Path to the credentials file (default ZONECTL_CREDS).")

    subparsers = parser.add_subparsers(dest="command", required=True)
    preview_parser = subparsers.add_parser("preview", help="Show the corrections that push would make.")
    _register_common_arguments(preview_parser)
    preview_parser.add_argument(
        "--populate-on-preview",
        action="store_true",
        help="Create missing zones even while previewing.",
    )

    push_parser = subparsers.add_parser("push", help="Make the corrections.")
    _register_common_arguments(push_parser)
    push_parser.add_argument("-i", "--interactive", action="store_true", help="Confirm each correction.")
    return parser


def _register_common_arguments(subparser: argparse.ArgumentParser) -> None:
    """Register arguments shared by preview/push."""
    subparser.add_argument("--domains", default="", help="Comma-separated zones to process (default all).")
    subparser.add_argument(
        "--providers",
        default="",
        help="Comma-separated providers to use; 'all' for every provider (default: default providers).",
    )
    subparser.add_argument("--notify", action="store_true", help="Send notifications for each correction.")
    subparser.add_argument("--no-populate", action="store_true", help="Do not create missing zones.")
    subparser.add_argument("--depopulate", action="store_true", help="Delete zones not in the configuration.")
    subparser.add_argument(
        "--expect-no-changes",
        action="store_true",
        help="Exit non-zero if there are any corrections.",
    )
    subparser.add_argument("--full", action="store_true", help="Verbose headings and unabridged skip lists.")
    subparser.add_argument("--report", help="Write a JSON report of corrections to this path.")
    subparser.add_argument("--bindserial", type=int, default=0, help="Force the SOA serial of BIND zones.")
    subparser.add_argument("--cmode", choices=CONCURRENCY_MODES, default="concurrent", help="Which zones to plan concurrently.")
    subparser.add_argument("--cmax", type=int, help="Maximum concurrent zone tasks.")
    subparser.add_argument("--reportmax", type=int, help="Skipped records listed before truncating.")
    subparser.add_argument(
        "-e",
        "--var",
        action="append",
        help="Template variable for YAML configs in KEY=VALUE form. Can be repeated.",
    )


def _parse_template_vars(values: list[str] | None) -> dict[str, str]:
    """Convert KEY=VALUE pairs into a dict."""
    result: dict[str, str] = {}
    if not values:
        return result
    for value in values:
        if "=" not in value:
            raise ZonectlError(f"Invalid template var '{value}', expected KEY=VALUE.")
        key, val = value.split("=", 1)
        result[key] = val
    return result


def _build_options(args: argparse.Namespace, config: AppConfig) -> RunOptions:
    """Merge CLI flags over environment configuration."""
    return RunOptions(
        push=args.command == "push",
        interactive=getattr(args, "interactive", False),
        no_populate=args.no_populate,
        populate_on_preview=getattr(args, "populate_on_preview", False),
        depopulate=args.depopulate,
        expect_no_changes=args.expect_no_changes,
        full=args.full or config.full_report,
        domains=args.domains,
        providers=args.providers,
        report_path=Path(args.report) if args.report else None,
        cmode=args.cmode,
        cmax=args.cmax if args.cmax is not None else config.concurrency,
        provider_timeout=config.provider_timeout,
        report_max=args.reportmax if args.reportmax is not None else config.report_max,
    )


def _run(args: argparse.Namespace, config: AppConfig) -> int:
    """Load everything, then preview or push."""
    registry = load_builtin_providers()
    if args.bindserial:
        set_forced_serial(args.bindserial)

    config_path = Path(args.config) if args.config else config.config_path
    cfg = load_config_file(config_path, template_vars=_parse_template_vars(args.var))
    validate_config(cfg, registry)
    creds = load_credentials(Path(args.creds) if args.creds else config.creds_path)
    for msg in initialize_providers(cfg, creds, registry):
        print(msg)

    options = _build_options(args, config)
    result = run_preview_push(
        cfg,
        options,
        printer=ConsolePrinter(verbose=options.full),
        notifier=init_notifier(args.notify),
        registry=registry,
    )
    if result.unexpected_changes:
        print("Changes were found but --expect-no-changes was set.", file=sys.stderr)
    return result.exit_code


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        config = load_config()
    except ValueError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(1)
    configure_logging(args.log_level or config.log_level)
    install_socks_proxy(config.socks_proxy)
    try:
        code = _run(args, config)
    except ZonectlError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    except Exception as exc:  # noqa: BLE001
        print(f"Unexpected error: {exc}", file=sys.stderr)
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
