"""
Command-line entry point.

Exit Codes:
    0:  Released (DONE), gate closed (SKIPPED), or --check-only with gate open
    40: ConfigurationError
    41: PackagingError
    42: PublishConflictError
    43: TransportError
    44: AuthenticationError
    45: ReleaseConflictError
    46: InconsistentStateError (registry published, release missing)
    49: Unexpected error
"""

import argparse
import logging
import os
from pathlib import Path
from typing import List, Optional

from release_gate.config import ReleaseGateConfigLoader, merge_cli_with_config
from release_gate.coordinator import (
    PipelineReport,
    PublishCoordinator,
    generate_json_report,
    generate_text_report,
)
from release_gate.credentials import Credentials
from release_gate.errors import ConfigurationError
from release_gate.logging_config import configure_logging
from release_gate.packager import ArtifactPackager
from release_gate.registry import CratesIoRegistry
from release_gate.release_host import GitHubReleaseHost, ReleaseAnnouncer

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="release-gate",
        description="Gate and publish a crate release to the registry and the release host",
    )
    parser.add_argument("--checkout", type=Path, default=Path("."), help="Source checkout directory")
    parser.add_argument("--config", help="Config file (YAML or JSON)")
    parser.add_argument("--check-only", action="store_true",
                        help="Run the version gate and stop without publishing")
    parser.add_argument("--repository", help="Release host repository as owner/repo")
    parser.add_argument("--target-dir", type=Path, help="Build target directory")
    parser.add_argument("--json-report", type=Path, help="JSON report output path")
    parser.add_argument("--text-report", type=Path, help="Text report output path")
    parser.add_argument("--log-format", choices=["json", "text"], help="Log output format")
    parser.add_argument("--verbose", action="store_true")
    return parser


def build_coordinator(config: dict, repository: Optional[str]) -> PublishCoordinator:
    """Wire the production adapters from a loaded config."""
    registry_config = config["registry"]
    host_config = config["release_host"]

    repo_identity = (
        repository
        or host_config.get("repository")
        or os.environ.get(host_config.get("repository_env") or "GITHUB_REPOSITORY")
    )

    announcer = ReleaseAnnouncer(
        GitHubReleaseHost(host_config),
        title_template=host_config.get("title_template", "Release {version}"),
        generate_notes=host_config.get("generate_notes", True),
        make_latest=host_config.get("make_latest", True),
    )

    # each subprocess sees only its own stage's token
    registry_token_env = registry_config["token_env"]
    host_token_env = host_config["token_env"]
    packager_hidden = (registry_token_env, "CARGO_REGISTRY_TOKEN", host_token_env)

    return PublishCoordinator(
        registry=CratesIoRegistry(registry_config, hidden_env=(host_token_env,)),
        packager=ArtifactPackager(config["packager"], hidden_env=packager_hidden),
        announcer=announcer,
        repo_identity=repo_identity,
        registry_credentials=Credentials.from_environment(registry_token_env),
        release_credentials=Credentials.from_environment(host_token_env),
    )


def print_summary(report: PipelineReport) -> None:
    print(f"\n{'='*80}")
    print(f"Release Gate Status: {report.state.upper()}")
    print(f"{'='*80}")
    print(report.summary)
    print(f"Exit Code: {report.exit_code}")
    print(f"{'='*80}\n")


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for the release gate."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        loader = ReleaseGateConfigLoader(config_path=args.config, base_dir=str(args.checkout))
        config = loader.load()
    except ConfigurationError as e:
        configure_logging(level="INFO", format=args.log_format or "text")
        logger.error(f"✗ Configuration error: {e}")
        return e.exit_code

    logging_config = merge_cli_with_config(
        {"format": args.log_format, "level": "DEBUG" if args.verbose else None},
        config,
        "logging",
    )
    configure_logging(level=logging_config["level"], format=logging_config["format"])

    config["packager"] = merge_cli_with_config(
        {"target_dir": str(args.target_dir) if args.target_dir else None}, config, "packager"
    )
    report_config = merge_cli_with_config(
        {"json_path": args.json_report, "text_path": args.text_report}, config, "report"
    )

    coordinator = build_coordinator(config, args.repository)
    report = coordinator.run(args.checkout, check_only=args.check_only)

    if report_config.get("json_path"):
        generate_json_report(report, Path(report_config["json_path"]))
    if report_config.get("text_path"):
        generate_text_report(report, Path(report_config["text_path"]))

    print_summary(report)
    return report.exit_code
