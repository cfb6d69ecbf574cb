"""Unit tests for report aggregation."""

from datetime import datetime, timezone

from schema_guard.models.alert import Severity, ValidationAlert
from schema_guard.services.report import ReportAggregator, summarize


def alert(severity: str, code: str = "X") -> ValidationAlert:
    return ValidationAlert(severity=severity, code=code, location="/data/T", message="m")


class TestSummarize:
    """Tests for severity counts."""

    def test_counts(self):
        """Test that each severity is counted once."""
        summary = summarize([alert("error"), alert("warn"), alert("warn"), alert("info")])

        assert (summary.errors, summary.warnings, summary.infos) == (1, 2, 1)
        assert summary.total == 4

    def test_empty(self):
        """Test an empty alert stream."""
        assert summarize([]).total == 0


class TestReportAggregator:
    """Tests for ReportAggregator.aggregate."""

    def test_concatenates_in_stage_order(self):
        """Test that alerts keep stage order and levels are partitioned."""
        a, b, c, r = alert("error", "A"), alert("error", "B"), alert("warn", "C"), alert("info", "RULE_R")
        report = ReportAggregator().aggregate([a], [b], [c], [r])

        assert [x.code for x in report.alerts] == ["A", "B", "C", "RULE_R"]
        assert report.level_a == [a]
        assert report.level_b == [b]
        assert report.level_c == [c]
        assert report.rule_alerts == [r]
        assert report.summary.total == len(report.alerts)

    def test_rule_alerts_are_not_partitioned(self):
        """Test that rule alerts only appear in the flat list."""
        report = ReportAggregator().aggregate([], [], [], [alert("error", "RULE_R")])

        assert report.level_a == report.level_b == report.level_c == []
        assert report.summary.errors == 1
        assert not report.is_valid

    def test_timestamp(self):
        """Test the ISO-8601 UTC timestamp."""
        moment = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        report = ReportAggregator().aggregate([], [], [], [], timestamp=moment)

        assert report.timestamp == "2024-05-01T12:00:00+00:00"
        assert report.is_valid

    def test_default_timestamp_is_utc(self):
        """Test that the default timestamp carries an offset."""
        report = ReportAggregator().aggregate([], [], [], [])
        assert datetime.fromisoformat(report.timestamp).tzinfo is not None

    def test_to_dict_uses_wire_names(self):
        """Test the camelCase report payload."""
        fix = ValidationAlert(
            severity=Severity.ERROR,
            code="FOREIGN_KEY_VIOLATION",
            location="/data/Posts/p1/authorId",
            message="m",
            quickFix={"op": "setNull", "field": "authorId"},
        )
        payload = ReportAggregator().aggregate([], [fix], [], []).to_dict()

        assert set(payload) == {"timestamp", "summary", "alerts", "levelA", "levelB", "levelC"}
        assert payload["levelB"][0]["quickFix"] == {"op": "setNull", "field": "authorId"}
        assert payload["alerts"][0]["severity"] == "error"
        assert "suggestion" not in payload["alerts"][0]
