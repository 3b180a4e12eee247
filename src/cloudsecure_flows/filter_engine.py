"""
Condition based filtering of flow CSV files against IP lists.
"""

import csv
import logging
import os
from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Final, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .codec import FlowCsvReader, FlowStatus
from .config import FlowColumns, ensure_parent_dir
from .errors import ConfigError, FatalIOError
from .ip_sets import IPSet, contains, is_globally_routable, parse_list

logger = logging.getLogger(__name__)

INTERNET: Final[str] = "Internet"
PRESET_PLACEHOLDER: Final[str] = "Select Preset"


class ConditionField(str, Enum):
    SOURCE_IP = "sourceIP"
    DEST_IP = "destIP"


class Operator(str, Enum):
    EQUALS = "=="
    NOT_EQUALS = "!="


FIELD_INDEX: Final[dict[ConditionField, int]] = {
    ConditionField.SOURCE_IP: FlowColumns.SOURCE_IP_INDEX,
    ConditionField.DEST_IP: FlowColumns.DEST_IP_INDEX,
}


class FilterCondition(BaseModel):
    """One field/operator/list-reference clause."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    field: ConditionField = Field(alias="Field")
    operator: Operator = Field(alias="Operator")
    list_files: tuple[str, ...] = Field(alias="ListFiles", min_length=1)

    @field_validator("list_files", mode="before")
    @classmethod
    def _strip_names(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.split(",")
        if isinstance(value, (list, tuple)):
            return tuple(str(name).strip() for name in value if str(name).strip())
        return value

    def __str__(self) -> str:
        return f"{self.field.value} {self.operator.value} {','.join(self.list_files)}"


class Preset(BaseModel):
    """A named set of conditions plus the flow status it applies to."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    conditions: list[FilterCondition] = Field(min_length=1)
    flow_status: FlowStatus

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def build_condition(
    field: str, operator: str, list_files: Iterable[str] | str
) -> FilterCondition:
    """Build a condition, turning validation failures into ConfigError."""
    try:
        return FilterCondition(
            field=field,
            operator=operator,
            list_files=list_files if isinstance(list_files, str) else tuple(list_files),
        )
    except ValidationError as e:
        raise ConfigError(f"Invalid filter condition: {e}") from e


def parse_condition(text: str) -> FilterCondition:
    """Parse 'sourceIP == a.txt,Internet' style condition text."""
    for operator in (Operator.NOT_EQUALS, Operator.EQUALS):
        field, sep, lists = text.partition(operator.value)
        if sep:
            return build_condition(field.strip(), operator.value, lists)
    raise ConfigError(f"Invalid filter condition '{text}': expected '==' or '!='")


def validate_flow_status(flow_status: str) -> FlowStatus:
    try:
        return FlowStatus(flow_status)
    except ValueError:
        choices = ", ".join(status.value for status in FlowStatus)
        raise ConfigError(f"Invalid flow status '{flow_status}'. Use one of: {choices}")


@dataclass
class FilterResult:
    """Counts reported by a filter run."""

    records_processed: int = 0
    records_retained: int = 0
    records_skipped: int = 0
    output_file: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def __str__(self) -> str:
        return (
            f"processed {self.records_processed} records, "
            f"filtered {self.records_retained} records"
        )


class IPListCache:
    """Named IP lists, parsed at most once per run."""

    def __init__(self, list_dir: Optional[str] = None):
        self.list_dir = list_dir
        self._sets: dict[str, IPSet] = {}

    def resolve_path(self, name: str) -> str:
        if self.list_dir and not os.path.isabs(name):
            return str(Path(self.list_dir) / name)
        return name

    def get(self, name: str) -> IPSet:
        if (ip_set := self._sets.get(name)) is None:
            ip_set = parse_list(self.resolve_path(name))
            self._sets[name] = ip_set
        return ip_set

    def preload(self, conditions: Iterable[FilterCondition]) -> None:
        for condition in conditions:
            for name in condition.list_files:
                if name != INTERNET:
                    self.get(name)

    def __len__(self) -> int:
        return len(self._sets)


class FilterEngine:
    """Evaluates AND-combined conditions against flow CSV rows."""

    def __init__(
        self,
        conditions: Iterable[FilterCondition],
        flow_status: FlowStatus | str,
        list_dir: Optional[str] = None,
    ):
        self.conditions = list(conditions)
        self.flow_status = validate_flow_status(
            flow_status.value if isinstance(flow_status, FlowStatus) else flow_status
        ).value
        self.lists = IPListCache(list_dir)

    def load_lists(self) -> None:
        self.lists.preload(self.conditions)

    def in_any_list(self, address: str, list_files: Iterable[str]) -> bool:
        for name in list_files:
            if name == INTERNET:
                found = is_globally_routable(address)
            else:
                found = contains(self.lists.get(name), address)
            if found:
                return True
        return False

    def condition_holds(self, condition: FilterCondition, row: list[str]) -> bool:
        address = row[FIELD_INDEX[condition.field]]
        in_list = self.in_any_list(address, condition.list_files)
        if condition.operator is Operator.EQUALS:
            return in_list
        return not in_list

    def matches(self, row: list[str]) -> bool:
        """Decide inclusion of a row with at least MIN_FILTER_COLUMNS columns."""
        if row[FlowColumns.STATUS_INDEX] != self.flow_status:
            return False
        return all(self.condition_holds(condition, row) for condition in self.conditions)

    def run(self, input_path: str, output_path: str) -> FilterResult:
        """Filter input_path into output_path, keeping the header row."""
        self.load_lists()
        result = FilterResult(output_file=output_path)

        with FlowCsvReader(input_path) as reader:
            ensure_parent_dir(output_path)
            try:
                output = open(output_path, "w", newline="")
            except OSError as e:
                raise FatalIOError(f"Error creating output file {output_path}: {e}")

            with output:
                writer = csv.writer(output)
                writer.writerow(reader.header)

                for row in reader:
                    result.records_processed += 1

                    if len(row) < FlowColumns.MIN_FILTER_COLUMNS:
                        logger.warning(f"Skipping record with insufficient fields: {row}")
                        result.records_skipped += 1
                        continue

                    if self.matches(row):
                        writer.writerow(row)
                        result.records_retained += 1

        logger.info(f"Filtering complete: {result}")
        return result


# Public API functions
def filter_csv(
    input_path: str,
    output_path: str,
    conditions: Iterable[FilterCondition],
    flow_status: FlowStatus | str,
    list_dir: Optional[str] = None,
) -> FilterResult:
    """Filter a flow CSV file with the given conditions and flow status."""
    return FilterEngine(conditions, flow_status, list_dir).run(input_path, output_path)


def apply_preset(
    input_path: str,
    preset: Preset,
    output_path: Optional[str] = None,
    list_dir: Optional[str] = None,
) -> FilterResult:
    """Run a preset over input_path; output name derives from the preset."""
    output_path = output_path or output_file_name(input_path, preset.name)
    return filter_csv(
        input_path, output_path, preset.conditions, preset.flow_status, list_dir
    )


def output_file_name(input_path: str, preset_name: Optional[str]) -> str:
    """<base>_<preset><ext>, or <base>_filtered<ext> without a preset name."""
    path = Path(input_path)
    suffix = (
        "filtered"
        if not preset_name or preset_name == PRESET_PLACEHOLDER
        else preset_name
    )
    return str(path.with_name(f"{path.stem}_{suffix}{path.suffix}"))
