"""
Tests for condition filtering of flow CSV files.
"""

import pytest

from cloudsecure_flows.codec import FlowStatus
from cloudsecure_flows.config import FLOW_HEADER
from cloudsecure_flows.errors import ConfigError, FatalIOError, ParseError
from cloudsecure_flows.filter_engine import (
    ConditionField,
    FilterCondition,
    FilterEngine,
    FilterResult,
    IPListCache,
    Operator,
    Preset,
    apply_preset,
    build_condition,
    filter_csv,
    output_file_name,
    parse_condition,
    validate_flow_status,
)

from conftest import read_csv, write_flow_csv

EXAMPLE_ROW = ["ALLOWED", "t1", "t2", "10.0.0.5", "8.8.8.8", "443", "tcp", "100"]


@pytest.fixture
def example_lists(tmp_path):
    (tmp_path / "ListA.txt").write_text("10.0.0.0/8\n")
    (tmp_path / "ListB.txt").write_text("8.8.8.0/24\n")
    return tmp_path


class TestConditions:
    """Test condition construction and parsing."""

    def test_parse_equals(self):
        """Test an equality condition with several lists."""
        condition = parse_condition("sourceIP == internal.txt, Internet")

        assert condition.field is ConditionField.SOURCE_IP
        assert condition.operator is Operator.EQUALS
        assert condition.list_files == ("internal.txt", "Internet")
        assert str(condition) == "sourceIP == internal.txt,Internet"

    def test_parse_not_equals(self):
        """Test an inequality condition."""
        condition = parse_condition("destIP!=dns.txt")

        assert condition.field is ConditionField.DEST_IP
        assert condition.operator is Operator.NOT_EQUALS
        assert condition.list_files == ("dns.txt",)

    @pytest.mark.parametrize(
        "text",
        ["sourceIP dns.txt", "srcIP == dns.txt", "sourceIP == ", "sourceIP >= a.txt"],
    )
    def test_parse_invalid(self, text):
        """Test malformed condition text is a config error."""
        with pytest.raises(ConfigError):
            parse_condition(text)

    def test_json_aliases(self):
        """Test conditions load from the stored key names."""
        condition = FilterCondition.model_validate(
            {"Field": "destIP", "Operator": "!=", "ListFiles": ["a.txt"]}
        )

        assert condition == build_condition("destIP", "!=", ["a.txt"])

    def test_validate_flow_status(self):
        """Test flow status values."""
        assert validate_flow_status("DENIED") is FlowStatus.DENIED
        with pytest.raises(ConfigError):
            validate_flow_status("allowed")


class TestMatching:
    """Test row inclusion decisions."""

    def test_example_conditions_exclude(self, example_lists):
        """Test a destination inside an excluded list drops the row."""
        engine = FilterEngine(
            [
                build_condition("sourceIP", "==", ["ListA.txt"]),
                build_condition("destIP", "!=", ["ListB.txt"]),
            ],
            "ALLOWED",
            str(example_lists),
        )

        assert not engine.matches(EXAMPLE_ROW)

    def test_example_conditions_include(self, example_lists):
        """Test dropping the exclusion keeps the row."""
        engine = FilterEngine(
            [build_condition("sourceIP", "==", ["ListA.txt"])],
            "ALLOWED",
            str(example_lists),
        )

        assert engine.matches(EXAMPLE_ROW)

    def test_status_exact_match(self, example_lists):
        """Test status must match exactly."""
        engine = FilterEngine(
            [build_condition("sourceIP", "==", ["ListA.txt"])],
            FlowStatus.DENIED,
            str(example_lists),
        )

        assert not engine.matches(EXAMPLE_ROW)
        assert not engine.matches(["ALLOWED_EXTRA"] + EXAMPLE_ROW[1:])

    def test_or_across_lists(self, example_lists):
        """Test a condition holds when any referenced list contains the IP."""
        engine = FilterEngine(
            [build_condition("destIP", "==", ["ListA.txt", "ListB.txt"])],
            "ALLOWED",
            str(example_lists),
        )

        assert engine.matches(EXAMPLE_ROW)

    def test_internet_sentinel(self, example_lists):
        """Test the Internet reference matches public addresses only."""
        engine = FilterEngine(
            [build_condition("destIP", "==", ["Internet"])], "ALLOWED", str(example_lists)
        )

        assert engine.matches(EXAMPLE_ROW)
        assert not engine.matches(EXAMPLE_ROW[:4] + ["192.168.1.1"] + EXAMPLE_ROW[5:])

    def test_unparseable_ip_not_in_list(self, example_lists):
        """Test an empty IP is never a list member."""
        engine = FilterEngine(
            [build_condition("sourceIP", "!=", ["ListA.txt"])], "ALLOWED", str(example_lists)
        )

        assert engine.matches(EXAMPLE_ROW[:3] + [""] + EXAMPLE_ROW[4:])


class TestListCache:
    """Test per-run list caching."""

    def test_lists_parsed_once(self, example_lists):
        """Test a list referenced twice is loaded once."""
        cache = IPListCache(str(example_lists))
        conditions = [
            build_condition("sourceIP", "==", ["ListA.txt", "Internet"]),
            build_condition("destIP", "!=", ["ListA.txt"]),
        ]

        cache.preload(conditions)

        assert len(cache) == 1
        assert cache.get("ListA.txt") is cache.get("ListA.txt")

    def test_absolute_paths_ignore_list_dir(self, example_lists, tmp_path):
        """Test absolute list paths are used as given."""
        cache = IPListCache("/nonexistent")
        path = str(example_lists / "ListB.txt")

        assert cache.resolve_path(path) == path
        assert cache.resolve_path("x.txt") == "/nonexistent/x.txt"


class TestFilterRun:
    """Test filtering whole files."""

    def test_counts_and_output(self, tmp_path, example_lists):
        """Test counts, header preservation and skipped short rows."""
        input_path = write_flow_csv(
            tmp_path / "flows.csv",
            [
                EXAMPLE_ROW,
                ["ALLOWED", "t1", "t2", "10.9.9.9", "1.1.1.1", "53", "udp", "10"],
                ["ALLOWED", "t1", "t2"],
                ["DENIED", "t1", "t2", "10.0.0.1", "4.4.4.4", "80", "tcp", "1"],
            ],
        )
        output_path = tmp_path / "out" / "flows_filtered.csv"

        result = filter_csv(
            str(input_path),
            str(output_path),
            [
                build_condition("sourceIP", "==", ["ListA.txt"]),
                build_condition("destIP", "!=", ["ListB.txt"]),
            ],
            "ALLOWED",
            str(example_lists),
        )

        assert result == FilterResult(
            records_processed=4,
            records_retained=1,
            records_skipped=1,
            output_file=str(output_path),
        )
        assert str(result) == "processed 4 records, filtered 1 records"
        rows = read_csv(output_path)
        assert rows[0] == list(FLOW_HEADER)
        assert rows[1][3] == "10.9.9.9"
        assert len(rows) == 2

    def test_header_only_output(self, tmp_path, example_lists):
        """Test an empty input still yields a header-only output."""
        input_path = write_flow_csv(tmp_path / "flows.csv", [])
        output_path = tmp_path / "flows_out.csv"

        result = filter_csv(
            str(input_path),
            str(output_path),
            [build_condition("sourceIP", "==", ["ListA.txt"])],
            "ALLOWED",
            str(example_lists),
        )

        assert result.records_processed == 0
        assert read_csv(output_path) == [list(FLOW_HEADER)]

    def test_bad_list_aborts_before_output(self, tmp_path, flow_csv):
        """Test an invalid list fails the run before any output is written."""
        (tmp_path / "bad.txt").write_text("10.0.0.0/8\nbogus\n")
        output_path = tmp_path / "out.csv"

        with pytest.raises(ParseError):
            filter_csv(
                str(flow_csv),
                str(output_path),
                [build_condition("sourceIP", "==", ["bad.txt"])],
                "ALLOWED",
                str(tmp_path),
            )
        assert not output_path.exists()

    def test_missing_input(self, tmp_path, example_lists):
        """Test a missing input file is fatal."""
        with pytest.raises(FatalIOError):
            filter_csv(
                str(tmp_path / "missing.csv"),
                str(tmp_path / "out.csv"),
                [build_condition("sourceIP", "==", ["ListA.txt"])],
                "ALLOWED",
                str(example_lists),
            )

    def test_apply_preset(self, flow_csv, ip_lists):
        """Test a preset run derives its output name from the preset."""
        preset = Preset(
            name="internal-to-dns",
            conditions=[
                build_condition("sourceIP", "==", ["internal.txt"]),
                build_condition("destIP", "==", ["dns.txt"]),
            ],
            flow_status=FlowStatus.ALLOWED,
        )

        result = apply_preset(str(flow_csv), preset, list_dir=str(ip_lists))

        assert result.output_file.endswith("20240501_internal-to-dns.csv")
        assert result.records_processed == 4
        assert result.records_retained == 1


class TestOutputFileName:
    """Test derived output file names."""

    def test_with_preset(self):
        """Test the preset name is appended to the base name."""
        assert output_file_name("data/20240501.csv", "web") == "data/20240501_web.csv"

    @pytest.mark.parametrize("name", ["", None, "Select Preset"])
    def test_without_preset(self, name):
        """Test the fallback suffix."""
        assert output_file_name("20240501.csv", name) == "20240501_filtered.csv"
