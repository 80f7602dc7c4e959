"""
Command line entry point for the image retention step.

Runs in DRY RUN mode unless --apply is given, so the plan can be reviewed
before any image is modified or deleted.
"""

import argparse
import logging
import sys
from typing import List, Optional

from image_retention.config_manager import ConfigManager
from image_retention.error_utils import ActionableError
from image_retention.logging_utils import get_logger, log_exception, setup_logging
from image_retention.models import StatusEvent
from image_retention.post_processor import PostProcessor
from image_retention.report_utils import build_report, format_plan_table, save_json

logger = get_logger(__name__)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Keep the newest N OpenStack images of a name and delete the older ones (default: dry-run)"
    )
    parser.add_argument("--config", help="Path to config.yaml (default: CONFIG_FILE env var or ./config.yaml)")
    parser.add_argument("--identifier", help="Exact image name whose releases are managed")
    parser.add_argument("--keep-releases", type=int, help="Number of most recent images to keep")
    parser.add_argument("--apply", action="store_true", help="Actually patch and delete images (default: dry-run)")
    parser.add_argument(
        "--continue-on-error",
        action="store_true",
        help="Keep processing remaining images after a failed patch or delete",
    )
    parser.add_argument("--artifact", help="Build artifact id passed through the post-processor")
    parser.add_argument("--output", help="Report file path (default: output.report_file from config)")
    parser.add_argument("--no-report", action="store_true", help="Do not write a JSON report")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    return parser.parse_args(argv)


def log_status_event(event: StatusEvent) -> None:
    logger.info(event.message)


def load_config(args: argparse.Namespace) -> ConfigManager:
    """Load config, apply command line overrides and validate."""
    config_manager = ConfigManager(config_file=args.config, validate=False)
    retention = config_manager.config["retention"]
    if args.identifier is not None:
        retention["identifier"] = args.identifier
    if args.keep_releases is not None:
        retention["keep_releases"] = args.keep_releases
    if args.continue_on_error:
        retention["continue_on_error"] = True
    if args.output:
        config_manager.config["output"]["report_file"] = args.output
    config_manager.validate_config()
    return config_manager


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_arguments(argv)
    setup_logging(level=getattr(logging, args.log_level))
    logging.getLogger().setLevel(getattr(logging, args.log_level))

    try:
        config_manager = load_config(args)
    except ActionableError as e:
        logger.error(str(e))
        return 1

    dry_run = not args.apply
    settings = config_manager.get_retention_settings(dry_run=dry_run)
    if dry_run:
        logger.info("Running in DRY RUN mode (default) - no images will be modified or deleted")
    else:
        logger.warning(f"Running in APPLY mode - images named '{settings.identifier}' will be deleted")

    processor = PostProcessor(settings, on_event=log_status_event)
    artifact = None
    error = None
    interrupted = False
    try:
        artifact, _, _ = processor.post_process(args.artifact)
    except ActionableError as e:
        error = e
        logger.error(str(e))
    except KeyboardInterrupt:
        interrupted = True
        error = "interrupted"
        logger.error("Interrupted; images processed so far keep their changes")
    except Exception as e:
        error = e
        log_exception(logger, "Unexpected error during the retention run", e)
    finally:
        if processor.client is not None:
            processor.client.close()

    if processor.last_plan is not None and len(processor.last_plan):
        print(format_plan_table(processor.last_plan))

    if processor.last_report is not None and not args.no_report:
        data = build_report(
            settings.identifier,
            settings.keep_releases,
            processor.last_report,
            error=str(error) if error else None,
            dry_run=dry_run,
        )
        save_json(config_manager.get_report_path(), data, timestamp=True)

    if interrupted:
        return 130
    if error is not None:
        return 1

    if artifact is not None:
        logger.info(f"Artifact {artifact} passed through unchanged")
    return 0


if __name__ == "__main__":
    sys.exit(main())
