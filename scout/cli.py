"""
Command-line interface for the weekly scout.

Typical schedule: ``start`` once, then ``finalize`` a few minutes later
(repeat while it reports pending, up to the finalize budget).
"""

import argparse
import json
import logging
import sys
from typing import Dict, Optional

from scout.config import secrets
from scout.config.settings import ScoutConfig, load_config, normalize_mode
from scout.logging_config import configure_logging
from scout.pipeline.dataset_check import validate_dataset_file
from scout.pipeline.discovery import RUN_PENDING, DiscoveryRun
from scout.pipeline.extractor import ClaudeExtractor, ExtractionError
from scout.research.job_state import (
    JobBlockedError,
    JobNotFoundError,
    JobParams,
    JobStateMachine,
    JobStore,
    job_status_report,
)
from scout.research.providers.grok import GrokProvider
from scout.research.providers.perplexity import PerplexityProvider
from scout.research.providers.youtube import YouTubeTranscriptProvider
from scout.research.retry import ProviderError
from scout.research.stages import PROVIDER_GROK, PROVIDER_PERPLEXITY, PROVIDER_YOUTUBE, select_stages
from scout.store.blob_store import BlobExistsError, LocalBlobStore
from scout.store.dataset_store import DatasetStore

_PROVIDER_CLASSES = {
    PROVIDER_PERPLEXITY: PerplexityProvider,
    PROVIDER_GROK: GrokProvider,
    PROVIDER_YOUTUBE: YouTubeTranscriptProvider,
}


def build_providers(config: ScoutConfig, names) -> Dict[str, object]:
    """
    Instantiate providers for the given names.

    Raises:
        MissingAPIKeyError: A provider's key is not configured
    """
    providers = {}
    for name in sorted(set(names)):
        key = secrets.get_provider_key(name)
        providers[name] = _PROVIDER_CLASSES[name](key, config.providers)
    return providers


def _machine(config: ScoutConfig, providers: Dict[str, object]) -> JobStateMachine:
    store = JobStore(LocalBlobStore(config.store_root))
    return JobStateMachine(store, providers, config)


def cmd_start(args: argparse.Namespace, config: ScoutConfig) -> int:
    """Start a research job."""
    if not config.enabled and not args.force:
        print("Scout is disabled in config (use --force to run anyway)")
        return 0

    try:
        stages = select_stages(args.stages or config.stage_ids or None, args.provider)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    if not stages:
        print("Error: no stages selected", file=sys.stderr)
        return 1

    try:
        providers = build_providers(config, [s.provider for s in stages])
    except secrets.MissingAPIKeyError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    params = JobParams.from_config(config)
    if args.mode:
        params.mode = normalize_mode(args.mode)

    job = _machine(config, providers).start_job(stages, params)
    print(job_status_report(job))
    return 0


def cmd_finalize(args: argparse.Namespace, config: ScoutConfig) -> int:
    """Finalize the latest job and publish its case studies."""
    try:
        store = JobStore(LocalBlobStore(config.store_root))
        job = store.load_latest()
        async_names = [s.provider for s in job.open_stages()]
        providers = build_providers(config, async_names)
        extractor = ClaudeExtractor(
            secrets.get_anthropic_key(),
            config.providers,
            max_tokens=config.extractor_max_tokens,
            temperature=config.extractor_temperature,
        )
        fallback = None
        if config.fallback_search and secrets.check_keys()[secrets.PERPLEXITY_KEY_NAME] == "OK":
            fallback = PerplexityProvider(secrets.get_perplexity_key(), config.providers)
    except (JobNotFoundError, secrets.MissingAPIKeyError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    machine = JobStateMachine(store, providers, config)
    run = DiscoveryRun(machine, DatasetStore(store.blob_store, config.seed_dataset_path),
                       extractor, config, fallback_provider=fallback)

    try:
        report = run.run(job)
    except JobBlockedError as e:
        print(f"BLOCKED: {e}", file=sys.stderr)
        return 2
    except BlobExistsError as e:
        print(f"Error: run already published: {e}", file=sys.stderr)
        return 1
    except (ProviderError, ExtractionError) as e:
        print(f"Error: extraction failed: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    elif report.status == RUN_PENDING:
        print(f"Run {report.run_id} still pending (attempt {report.finalize_attempts}/{config.max_finalize_attempts})")
    else:
        print(f"Run {report.run_id} published: {report.added_count} added, {report.dataset_count} total")
        for case_id in report.added_ids:
            print(f"  + {case_id}")
    return 0


def cmd_status(args: argparse.Namespace, config: ScoutConfig) -> int:
    """Show the latest job."""
    store = JobStore(LocalBlobStore(config.store_root))
    try:
        job = store.load(args.run_id) if args.run_id else store.load_latest()
    except JobNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(job.to_dict(), indent=2))
    else:
        print(job_status_report(job))
    return 0


def cmd_validate_dataset(args: argparse.Namespace, config: ScoutConfig) -> int:
    """Validate a dataset file."""
    errors = validate_dataset_file(args.path)
    for err in errors:
        print(err, file=sys.stderr)
    if errors:
        print(f"FAILED: {len(errors)} problem(s)", file=sys.stderr)
        return 1
    print("OK")
    return 0


def cmd_check_keys(args: argparse.Namespace, config: ScoutConfig) -> int:
    """Show which API keys are configured."""
    status = secrets.check_keys()
    for key_name, key_status in status.items():
        print(f"{key_name}: {key_status}")
    return 0 if all(v == "OK" for v in status.values()) else 1


def main(argv: Optional[list] = None) -> int:
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        prog="agent-scout",
        description="Weekly AI agent revenue case-study scout"
    )
    parser.add_argument("--config", help="Path to scout.yaml (default: config/scout.yaml)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    start_parser = subparsers.add_parser("start", help="Start a research job")
    start_parser.add_argument("--stages", nargs="+", help="Stage ids to run")
    start_parser.add_argument("--provider", choices=sorted(_PROVIDER_CLASSES), help="Only stages of this provider")
    start_parser.add_argument("--mode", choices=["strict", "speculative"], help="Override validation mode")
    start_parser.add_argument("--force", action="store_true", help="Run even if disabled in config")
    start_parser.set_defaults(func=cmd_start)

    finalize_parser = subparsers.add_parser("finalize", help="Finalize the latest job and publish")
    finalize_parser.add_argument("--json", action="store_true", help="Print the run report as JSON")
    finalize_parser.set_defaults(func=cmd_finalize)

    status_parser = subparsers.add_parser("status", help="Show job status")
    status_parser.add_argument("--run-id", help="Specific run (default: latest)")
    status_parser.add_argument("--json", action="store_true", help="Print the job record as JSON")
    status_parser.set_defaults(func=cmd_status)

    validate_parser = subparsers.add_parser("validate-dataset", help="Validate a dataset file")
    validate_parser.add_argument("path", help="Dataset JSON path")
    validate_parser.set_defaults(func=cmd_validate_dataset)

    keys_parser = subparsers.add_parser("check-keys", help="Show API key status")
    keys_parser.set_defaults(func=cmd_check_keys)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    configure_logging(logging.DEBUG if args.verbose else logging.INFO)
    config = load_config(args.config)
    return args.func(args, config)


if __name__ == "__main__":
    sys.exit(main())
