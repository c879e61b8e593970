"""
Command line entry point.

Usage:
    provider-publisher --provider-directory dist
    python -m provider_publisher --dry-run

Inputs not given as flags are read from the environment (GitHub Actions
INPUT_* variables, or TFE_ORGANIZATION / TFE_TOKEN / PROVIDER_DIRECTORY /
GPG_KEY). The workspace root defaults to $GITHUB_WORKSPACE.

Exit codes:
    0: release published (or planned, with --dry-run)
    1: configuration, discovery, registry or upload failure
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from provider_publisher.config import ConfigurationError, PublishConfig
from provider_publisher.logging_config import redact, setup_logging
from provider_publisher.metrics import PublishMetrics
from provider_publisher.publisher.reconciler import Reconciler, plan_release
from provider_publisher.registry.client import RegistryClient, RegistryError
from provider_publisher.registry.upload import Uploader, UploadError
from provider_publisher.release.locator import DiscoveryError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from provider_publisher.publisher.reconciler import PublishReport

logger = logging.getLogger(__name__)

FATAL_ERRORS = (ConfigurationError, DiscoveryError, RegistryError, UploadError)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="provider-publisher",
        description="Publish a Terraform provider release to a private registry.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--organization-name",
        type=str,
        default=None,
        help="Organization owning the private registry",
    )
    parser.add_argument(
        "--provider-directory",
        type=str,
        default=None,
        help="Release directory, relative to the workspace root (e.g., dist)",
    )
    parser.add_argument(
        "--workspace",
        type=Path,
        default=None,
        help="Repository root (default: $GITHUB_WORKSPACE)",
    )
    parser.add_argument(
        "--namespace",
        type=str,
        default=None,
        help="Provider namespace (default: organization name)",
    )
    parser.add_argument(
        "--registry-url",
        type=str,
        default=None,
        help="Registry API host (default: https://app.terraform.io)",
    )
    parser.add_argument(
        "--gpg-key-file",
        type=Path,
        default=None,
        help="Read the ASCII-armored public key from this file instead of the environment",
    )
    parser.add_argument(
        "--upload-concurrency",
        type=int,
        default=None,
        help="Parallel binary uploads (default: 1, sequential)",
    )
    parser.add_argument(
        "--request-timeout-s",
        type=float,
        default=None,
        help="Registry API request timeout in seconds (default: 30)",
    )
    parser.add_argument(
        "--upload-timeout-s",
        type=float,
        default=None,
        help="Per-artifact upload timeout in seconds (default: 300)",
    )
    parser.add_argument(
        "--metrics-textfile",
        type=Path,
        default=None,
        help="Write Prometheus metrics to this file after the run",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Resolve the release and print the plan without contacting the registry",
    )
    parser.add_argument(
        "--log-format",
        choices=("json", "text"),
        default="json",
        help="Log output format (default: json)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser


async def publish(config: PublishConfig, metrics: PublishMetrics | None = None) -> PublishReport:
    """Run one reconciliation against the configured registry."""
    async with (
        RegistryClient(config.registry_config(), config.organization_api_token) as client,
        Uploader(timeout_s=config.upload_timeout_s) as uploader,
    ):
        reconciler = Reconciler(config.to_context(), client, uploader, metrics=metrics)
        return await reconciler.run()


def _dry_run(config: PublishConfig) -> None:
    plan = plan_release(config.to_context())
    logger.info(
        "Dry run: would publish %s %s",
        plan.identity.full_name,
        plan.metadata.version,
        extra={
            "protocols": list(plan.metadata.protocol_versions),
            "checksums_file": plan.checksums_path.name,
            "signature_file": plan.signature_path.name,
        },
    )
    for entry in plan.entries:
        logger.info(
            "Dry run: platform %s_%s",
            entry.os,
            entry.arch,
            extra={"artifact": entry.filename, "shasum": entry.shasum},
        )


def escape_workflow_data(message: str) -> str:
    """Escape a message for a GitHub Actions workflow command."""
    return message.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def _report_failure(message: str) -> None:
    logger.error("Publish failed: %s", message)
    if os.environ.get("GITHUB_ACTIONS") == "true":
        # Workflow command: marks the step as failed with this message
        print(f"::error::{escape_workflow_data(redact(message))}", flush=True)


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    setup_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        json_format=args.log_format == "json",
    )

    metrics = PublishMetrics()
    try:
        gpg_key = None
        if args.gpg_key_file is not None:
            try:
                gpg_key = args.gpg_key_file.read_text()
            except OSError as e:
                msg = f"Unable to read gpg key file {args.gpg_key_file}: {e}"
                raise ConfigurationError(msg) from e

        config = PublishConfig.from_env(
            organization_name=args.organization_name,
            provider_directory=args.provider_directory,
            workspace=args.workspace,
            namespace=args.namespace,
            registry_url=args.registry_url,
            gpg_key=gpg_key,
            upload_concurrency=args.upload_concurrency,
            request_timeout_s=args.request_timeout_s,
            upload_timeout_s=args.upload_timeout_s,
            dry_run=args.dry_run or None,
        )

        if config.dry_run:
            _dry_run(config)
            return 0

        asyncio.run(publish(config, metrics))
    except FATAL_ERRORS as e:
        _report_failure(str(e))
        return 1
    finally:
        if args.metrics_textfile is not None:
            metrics.write_textfile(args.metrics_textfile)

    return 0


if __name__ == "__main__":
    sys.exit(main())
