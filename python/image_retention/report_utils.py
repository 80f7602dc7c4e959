"""
Utility functions for retention plan tables and report files.

This module provides functions to:
- Render a retention plan as a table
- Save execution reports as JSON
- Generate timestamped report filenames
"""
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from tabulate import tabulate

from image_retention.logging_utils import get_logger
from image_retention.models import ExecutionReport, RetentionPlan

logger = get_logger(__name__)


def get_timestamp_suffix() -> str:
    """
    Generate a timestamp suffix for report filenames.

    Returns:
        String in format: YYYY-MM-DD-HH-MM-SS
    """
    return datetime.now().strftime("%Y-%m-%d-%H-%M-%S")


def add_timestamp_to_path(path: str, timestamp: Optional[str] = None) -> str:
    """
    Add a timestamp to a file path before the extension.

    Args:
        path: Original file path (e.g., 'reports/retention-report.json')
        timestamp: Optional timestamp string (defaults to current time)

    Returns:
        Path with timestamp inserted (e.g., 'reports/retention-report-2026-01-15-14-30-00.json')
    """
    if timestamp is None:
        timestamp = get_timestamp_suffix()

    p = Path(path)
    return str(p.parent / f"{p.stem}-{timestamp}{p.suffix}")


def format_plan_table(plan: RetentionPlan) -> str:
    """Render the plan newest first, one row per image."""
    headers = ["#", "Action", "Name", "ID", "Created"]
    rows = [
        (position, action.value.upper(), image.name, image.id, image.created_at.isoformat())
        for position, (image, action) in enumerate(plan.items(), 1)
    ]
    return tabulate(rows, headers=headers, tablefmt="grid")


def build_report(identifier: str, keep_releases: int, report: ExecutionReport, error: Optional[str] = None,
                 dry_run: bool = False) -> Dict[str, Any]:
    data = {
        "identifier": identifier,
        "keep_releases": keep_releases,
        "dry_run": dry_run,
        "generated_at": datetime.now().isoformat(),
        "error": error,
    }
    data.update(report.to_dict())
    return data


def save_json(path: str, data: Any, timestamp: bool = False) -> str:
    """
    Write JSON data to a file with indentation.

    Args:
        path: Path to save the JSON file
        data: Data to save
        timestamp: If True, add timestamp to filename

    Returns:
        Path to the saved file
    """
    if timestamp:
        path = add_timestamp_to_path(path)

    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "w") as f:
        json.dump(data, f, indent=2, default=str)

    logger.info(f"Report saved to {p}")
    return str(p)
