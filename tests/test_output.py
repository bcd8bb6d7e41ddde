"""Tests for output formatting utilities."""

import json
from datetime import datetime, timezone

import yaml

from canaryctl.core.output import (
    OutputFormat,
    OutputFormatter,
    format_duration,
    format_percent_bar,
    format_timestamp,
)


class TestFormatDuration:
    """Tests for format_duration utility."""

    def test_seconds(self):
        assert format_duration(30) == "30.0s"
        assert format_duration(59.9) == "59.9s"

    def test_minutes(self):
        assert format_duration(60) == "1.0m"
        assert format_duration(90) == "1.5m"

    def test_hours(self):
        assert format_duration(3600) == "1.0h"

    def test_days(self):
        assert format_duration(172800) == "2.0d"


class TestFormatPercentBar:
    """Tests for format_percent_bar utility."""

    def test_half(self):
        assert format_percent_bar(50, width=10) == "█████░░░░░ 50%"

    def test_bounds(self):
        assert format_percent_bar(0, width=4) == "░░░░ 0%"
        assert format_percent_bar(100, width=4) == "████ 100%"

    def test_clamped(self):
        assert format_percent_bar(150, width=4) == "████ 100%"


class TestFormatTimestamp:
    """Tests for format_timestamp utility."""

    def test_none(self):
        assert format_timestamp(None) == "-"

    def test_datetime(self):
        value = datetime(2024, 3, 1, 12, 30, 5, tzinfo=timezone.utc)
        assert format_timestamp(value) == "2024-03-01 12:30:05"


class TestOutputFormatter:
    """Tests for OutputFormatter class."""

    def test_quiet_mode_suppresses_output(self, capsys):
        formatter = OutputFormatter(quiet=True, color=False)
        formatter.print("test message")
        formatter.print_info("info message")
        formatter.print_warning("warning message")
        formatter.print_success("success message")
        captured = capsys.readouterr()
        assert "test message" not in captured.out
        assert "info message" not in captured.out

    def test_error_always_prints(self, capsys):
        formatter = OutputFormatter(quiet=True, color=False)
        formatter.print_error("error message")
        captured = capsys.readouterr()
        assert "error message" in captured.err

    def test_structured(self):
        assert OutputFormatter(format=OutputFormat.JSON).structured
        assert OutputFormatter(format=OutputFormat.YAML).structured
        assert not OutputFormatter(format=OutputFormat.TABLE).structured

    def test_json_output(self, capsys):
        formatter = OutputFormatter(format=OutputFormat.JSON, color=False)
        data = {"id": "abc12345", "status": "progressing", "current_canary_percent": 30}
        formatter.print_data(data)
        captured = capsys.readouterr()
        parsed = json.loads(captured.out)
        assert parsed == data

    def test_json_output_list(self, capsys):
        formatter = OutputFormatter(format=OutputFormat.JSON, color=False)
        data = [{"step": 1}, {"step": 2}]
        formatter.print_data(data)
        captured = capsys.readouterr()
        parsed = json.loads(captured.out)
        assert parsed == data

    def test_yaml_output(self, capsys):
        formatter = OutputFormatter(format=OutputFormat.YAML, color=False)
        data = {"name": "web-v2", "status": "promoted"}
        formatter.print_data(data)
        captured = capsys.readouterr()
        parsed = yaml.safe_load(captured.out)
        assert parsed == data

    def test_raw_output_dict(self, capsys):
        formatter = OutputFormatter(format=OutputFormat.RAW, color=False)
        formatter.print_data({"name": "web-v2", "status": "paused"})
        captured = capsys.readouterr()
        assert "name: web-v2" in captured.out
        assert "status: paused" in captured.out

    def test_status_styling(self):
        formatter = OutputFormatter(color=False)
        assert formatter._styled("status", "rolled_back") == "[red]rolled_back[/red]"
        assert formatter._styled("status", "unknown") == "unknown"
        assert formatter._styled("name", "promoted") == "promoted"
        assert formatter._styled("status", None) == ""


class TestOutputFormat:
    """Tests for OutputFormat enum."""

    def test_values(self):
        assert OutputFormat.TABLE.value == "table"
        assert OutputFormat.JSON.value == "json"
        assert OutputFormat.YAML.value == "yaml"
        assert OutputFormat.RAW.value == "raw"

    def test_string_comparison(self):
        assert OutputFormat.TABLE == "table"
        assert OutputFormat.JSON == "json"
