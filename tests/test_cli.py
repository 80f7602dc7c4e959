"""
Tests for the command line entry point and report helpers.
"""

import json
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import yaml

_python_dir = Path(__file__).parent.parent / "python"
if str(_python_dir.absolute()) not in sys.path:
    sys.path.insert(0, str(_python_dir.absolute()))

from image_retention import cli
from image_retention.error_utils import CatalogRequestError
from image_retention.models import Classification, ExecutionReport, ImageRecord, ItemOutcome, RetentionPlan
from image_retention.report_utils import add_timestamp_to_path, build_report, format_plan_table


def make_image(image_id, day):
    return ImageRecord(id=image_id, name="base-image", created_at=datetime(2024, 1, day, tzinfo=timezone.utc))


@pytest.fixture
def config_path(tmp_path):
    config = {
        "openstack": {"identity_endpoint": "https://ks", "username": "u", "password": "p", "tenant_name": "t"},
        "retention": {"identifier": "base-image", "keep_releases": 1},
        "output": {"output_dir": str(tmp_path / "reports"), "report_file": "retention-report.json"},
    }
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump(config))
    return str(path)


@pytest.fixture
def fake_client():
    client = MagicMock()
    client.fetch_image_page.return_value = {
        "images": [
            {"id": "A", "name": "base-image", "created_at": "2024-01-03T00:00:00Z"},
            {"id": "B", "name": "base-image", "created_at": "2024-01-02T00:00:00Z"},
        ]
    }
    return client


class TestReportUtils:
    """Tests for report helpers"""

    def test_add_timestamp_to_path(self):
        """Test the timestamp is inserted before the extension"""
        assert add_timestamp_to_path("reports/retention-report.json", "2026-01-15-14-30-00") == os.path.join(
            "reports", "retention-report-2026-01-15-14-30-00.json"
        )

    def test_format_plan_table(self):
        """Test every image appears with its action"""
        plan = RetentionPlan(retain=[make_image("A", 3)], purge=[make_image("B", 2)])

        table = format_plan_table(plan)

        assert "RETAIN" in table and "PURGE" in table
        assert table.index("RETAIN") < table.index("PURGE")
        assert "2024-01-03T00:00:00+00:00" in table

    def test_build_report(self):
        """Test the report carries summary and outcomes"""
        report = ExecutionReport()
        report.record(ItemOutcome(make_image("A", 3), Classification.RETAIN, success=True))
        report.record(ItemOutcome(make_image("B", 2), Classification.PURGE, success=False, error="boom"))

        data = build_report("base-image", 1, report, error="boom")

        assert data["summary"] == {"total": 2, "patched": 1, "deleted": 0, "failed": 1}
        assert data["outcomes"][1]["error"] == "boom"
        assert data["identifier"] == "base-image"


class TestMain:
    """Tests for cli.main"""

    def test_dry_run_by_default(self, config_path, fake_client, tmp_path):
        """Test no mutation happens without --apply and a report is written"""
        with patch("image_retention.post_processor.create_glance_client", return_value=fake_client):
            exit_code = cli.main(["--config", config_path])

        assert exit_code == 0
        fake_client.remove_property.assert_not_called()
        fake_client.delete_image.assert_not_called()
        reports = list((tmp_path / "reports").glob("retention-report-*.json"))
        assert len(reports) == 1
        assert json.loads(reports[0].read_text())["dry_run"] is True

    def test_apply_mutates(self, config_path, fake_client):
        """Test --apply patches the newest image and deletes the rest"""
        with patch("image_retention.post_processor.create_glance_client", return_value=fake_client):
            exit_code = cli.main(["--config", config_path, "--apply", "--no-report"])

        assert exit_code == 0
        fake_client.remove_property.assert_called_once_with("A", "signature_verified")
        fake_client.delete_image.assert_called_once_with("B")
        fake_client.close.assert_called_once()

    def test_command_line_overrides(self, config_path, fake_client):
        """Test --keep-releases overrides the config file"""
        with patch("image_retention.post_processor.create_glance_client", return_value=fake_client):
            cli.main(["--config", config_path, "--apply", "--keep-releases", "0", "--no-report"])

        assert fake_client.delete_image.call_count == 2

    def test_failure_exit_code(self, config_path, fake_client, tmp_path):
        """Test a failed delete exits 1 and still writes the report"""
        fake_client.delete_image.side_effect = CatalogRequestError("DELETE", "https://glance/v2/images/B", 500)

        with patch("image_retention.post_processor.create_glance_client", return_value=fake_client):
            exit_code = cli.main(["--config", config_path, "--apply"])

        assert exit_code == 1
        reports = list((tmp_path / "reports").glob("retention-report-*.json"))
        data = json.loads(reports[0].read_text())
        assert data["summary"]["failed"] == 1
        assert data["error"]

    def test_invalid_config_exit_code(self, tmp_path):
        """Test configuration errors exit 1 before any connection"""
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump({"retention": {"keep_releases": 1}}))

        with patch.dict(os.environ, {}, clear=True):
            assert cli.main(["--config", str(path)]) == 1

    def test_command_line_beats_environment(self, config_path, fake_client):
        """Test --keep-releases wins over RETENTION_KEEP_RELEASES"""
        with patch.dict(os.environ, {"RETENTION_KEEP_RELEASES": "0"}), \
                patch("image_retention.post_processor.create_glance_client", return_value=fake_client):
            exit_code = cli.main(["--config", config_path, "--apply", "--keep-releases", "5", "--no-report"])

        assert exit_code == 0
        fake_client.delete_image.assert_not_called()
        assert fake_client.remove_property.call_count == 2

    def test_environment_beats_config_file(self, config_path, fake_client):
        """Test RETENTION_KEEP_RELEASES overrides the config file without a flag"""
        with patch.dict(os.environ, {"RETENTION_KEEP_RELEASES": "2"}), \
                patch("image_retention.post_processor.create_glance_client", return_value=fake_client):
            cli.main(["--config", config_path, "--apply", "--no-report"])

        fake_client.delete_image.assert_not_called()

    def test_interrupt_writes_partial_report(self, config_path, fake_client, tmp_path):
        """Test Ctrl-C exits 130 and reports the images already processed"""
        fake_client.delete_image.side_effect = KeyboardInterrupt

        with patch("image_retention.post_processor.create_glance_client", return_value=fake_client):
            exit_code = cli.main(["--config", config_path, "--apply"])

        assert exit_code == 130
        fake_client.close.assert_called_once()
        reports = list((tmp_path / "reports").glob("retention-report-*.json"))
        data = json.loads(reports[0].read_text())
        assert data["summary"]["patched"] == 1
        assert data["error"] == "interrupted"

    def test_unexpected_error_logged_with_traceback(self, config_path, caplog):
        """Test errors outside the retention error types exit 1 with a traceback"""
        factory = MagicMock(side_effect=RuntimeError("socket exploded"))

        with patch("image_retention.post_processor.create_glance_client", factory):
            exit_code = cli.main(["--config", config_path, "--no-report"])

        assert exit_code == 1
        assert "RuntimeError: socket exploded" in caplog.text
        assert "Full traceback" in caplog.text
