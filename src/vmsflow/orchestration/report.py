"""
Aggregate fan-out report for vmsflow.

Joins per-target results and failures into one mapping keyed by entity id,
and evaluates column checks (expected values, minimum thresholds, expiry
dates) against the rows each target returned.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from vmsflow.core.types import ErrorCategory, ErrorRecord
from vmsflow.utils.errors import DuplicateTargetError, ValidationError

_MS_DATE_PATTERN = re.compile(r"/Date\((-?\d+)\)/")
_US_DATE_PATTERN = re.compile(r"(\d{1,2})/(\d{1,2})/(\d{4})")
_MIN_VALUE_NOTATION = re.compile(r"isLessThan(\d+)")


def parse_report_date(value: Any) -> datetime | None:
    """
    Parse the date formats found in server reports.

    Accepts datetime/date objects, `/Date(<ms since epoch>)/` and
    `MM/DD/YYYY`. Returns None for anything else. Results are naive UTC;
    aware datetimes are converted.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str):
        return None

    text = value.strip()
    match = _MS_DATE_PATTERN.fullmatch(text)
    if match:
        stamp = datetime.fromtimestamp(int(match.group(1)) / 1000, tz=timezone.utc)
        return stamp.replace(tzinfo=None)

    match = _US_DATE_PATTERN.fullmatch(text)
    if match:
        month, day, year = (int(part) for part in match.groups())
        try:
            return datetime(year, month, day)
        except ValueError:
            return None
    return None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _display(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# =============================================================================
# Column Checks
# =============================================================================


class CheckKind(str, Enum):
    """How a column value is judged."""

    EQUALS = "equals"  # String form must match
    AT_LEAST = "at_least"  # Numeric value must reach a threshold
    NOT_EXPIRED = "not_expired"  # Date must not be in the past

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class CheckRule:
    """
    Expectation for one column of a target's output rows.

    Example:
        rules = [
            CheckRule.equals("Enabled", True),
            CheckRule.at_least("FreeSpaceMB", 65536),
            CheckRule.not_expired("LicenseExpiry"),
        ]
    """

    column: str
    kind: CheckKind
    expected: Any = None

    @classmethod
    def equals(cls, column: str, expected: Any) -> CheckRule:
        return cls(column, CheckKind.EQUALS, expected)

    @classmethod
    def at_least(cls, column: str, threshold: float) -> CheckRule:
        return cls(column, CheckKind.AT_LEAST, threshold)

    @classmethod
    def not_expired(cls, column: str) -> CheckRule:
        return cls(column, CheckKind.NOT_EXPIRED)

    @classmethod
    def from_notation(cls, column: str, notation: Any) -> CheckRule:
        """
        Build a rule from the compact test-table notation.

        `isPassDate` checks expiry, `isLessThan<N>` flags values below N,
        anything else is an expected value.
        """
        if isinstance(notation, CheckRule):
            return notation
        if notation == "isPassDate":
            return cls.not_expired(column)
        if isinstance(notation, str):
            match = _MIN_VALUE_NOTATION.fullmatch(notation)
            if match:
                return cls.at_least(column, int(match.group(1)))
        return cls.equals(column, notation)

    def evaluate(self, value: Any, now: datetime | None = None) -> bool | None:
        """
        Judge one value.

        Returns:
            True/False, or None when an expiry check gets something that
            is not a date (the check does not apply)
        """
        if self.kind is CheckKind.EQUALS:
            return _display(self.expected) == _display(value)

        if self.kind is CheckKind.AT_LEAST:
            try:
                return float(value) >= float(self.expected)
            except (TypeError, ValueError):
                return False

        expires = parse_report_date(value)
        if expires is None:
            return None
        return (now or _utc_now()) <= expires

    def describe(self) -> str:
        if self.kind is CheckKind.EQUALS:
            return f"{self.column} == {_display(self.expected)}"
        if self.kind is CheckKind.AT_LEAST:
            return f"{self.column} >= {self.expected}"
        return f"{self.column} not expired"


@dataclass
class CheckResult:
    """Outcome of one rule against one row."""

    rule: CheckRule
    row_index: int
    value: Any
    passed: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "column": self.rule.column,
            "kind": self.rule.kind.value,
            "expected": self.rule.expected,
            "row": self.row_index,
            "value": self.value if isinstance(self.value, (int, float, bool)) else _display(self.value),
            "passed": self.passed,
        }


def normalize_rules(checks: Mapping[str, Any] | Iterable[CheckRule] | None) -> list[CheckRule]:
    """Accept {column: notation} mappings or CheckRule lists."""
    if checks is None:
        return []
    if isinstance(checks, Mapping):
        return [CheckRule.from_notation(column, notation) for column, notation in checks.items()]
    rules = list(checks)
    for rule in rules:
        if not isinstance(rule, CheckRule):
            raise ValidationError(f"Expected CheckRule, got {type(rule).__name__}")
    return rules


def evaluate_checks(
    rows: Iterable[Any],
    rules: Iterable[CheckRule],
    now: datetime | None = None,
) -> list[CheckResult]:
    """
    Apply rules to every mapping row that has the rule's column.

    Rows that are not mappings, and columns a row lacks, are skipped.
    """
    rules = list(rules)
    results: list[CheckResult] = []
    for index, row in enumerate(rows):
        if not isinstance(row, Mapping):
            continue
        for rule in rules:
            if rule.column not in row:
                continue
            passed = rule.evaluate(row[rule.column], now=now)
            if passed is None:
                continue
            results.append(CheckResult(rule, index, row[rule.column], passed))
    return results


# =============================================================================
# Report
# =============================================================================


@dataclass
class TargetOutcome:
    """
    Everything known about one fan-out target.

    Attributes:
        key: Entity id the outcome is attributed to
        source: "local" (work item) or "remote" (server task)
        output: Values produced for the target
        errors: Attributed errors
        checks: Column check results
        task_path: Remote task handle, for remote targets
        duration: Seconds spent on the target, when known
    """

    key: str
    source: str = "local"
    output: list[Any] = field(default_factory=list)
    errors: list[ErrorRecord] = field(default_factory=list)
    checks: list[CheckResult] = field(default_factory=list)
    task_path: str | None = None
    duration: float = 0.0

    @property
    def failed_checks(self) -> list[CheckResult]:
        return [check for check in self.checks if not check.passed]

    @property
    def passed(self) -> bool:
        return not self.errors and not self.failed_checks

    def apply_checks(self, rules: Iterable[CheckRule], now: datetime | None = None) -> None:
        """Evaluate rules against the output and record failures as errors."""
        self.checks = evaluate_checks(self.output, rules, now=now)
        for check in self.failed_checks:
            self.errors.append(
                ErrorRecord(
                    message=f"Check failed: {check.rule.describe()} (got {_display(check.value)!r})",
                    error_type="CheckFailed",
                    target=self.key,
                    category=ErrorCategory.CHECK,
                )
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "source": self.source,
            "passed": self.passed,
            "output": list(self.output),
            "errors": [error.to_dict() for error in self.errors],
            "checks": [check.to_dict() for check in self.checks],
            "task": self.task_path,
            "duration": round(self.duration, 3),
        }


@dataclass
class AggregateReport:
    """
    Result of one fan-out: entity id -> outcome.

    Example:
        report = orchestrator.run_local(recorders, collect_statistics, key=lambda r: r.name)
        for key in report.failed:
            print(key, [e.message for e in report[key].errors])
    """

    name: str = "fan-out"
    outcomes: dict[str, TargetOutcome] = field(default_factory=dict)
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: datetime | None = None

    def add(self, outcome: TargetOutcome) -> None:
        if outcome.key in self.outcomes:
            raise DuplicateTargetError(outcome.key)
        self.outcomes[outcome.key] = outcome

    def finish(self) -> AggregateReport:
        self.finished_at = datetime.now()
        return self

    @property
    def passed(self) -> list[str]:
        return [key for key, outcome in self.outcomes.items() if outcome.passed]

    @property
    def failed(self) -> list[str]:
        return [key for key, outcome in self.outcomes.items() if not outcome.passed]

    @property
    def all_passed(self) -> bool:
        return not self.failed

    @property
    def errors(self) -> list[ErrorRecord]:
        """Every error, each attributed to its target."""
        return [error for outcome in self.outcomes.values() for error in outcome.errors]

    @property
    def duration(self) -> float:
        end = self.finished_at or datetime.now()
        return (end - self.started_at).total_seconds()

    def summary(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "total": len(self.outcomes),
            "passed": len(self.passed),
            "failed": len(self.failed),
            "errors": len(self.errors),
            "duration": round(self.duration, 3),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.summary(),
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "targets": {key: outcome.to_dict() for key, outcome in self.outcomes.items()},
        }

    def __getitem__(self, key: str) -> TargetOutcome:
        return self.outcomes[key]

    def __contains__(self, key: object) -> bool:
        return key in self.outcomes

    def __len__(self) -> int:
        return len(self.outcomes)

    def __iter__(self) -> Iterator[str]:
        return iter(self.outcomes)


__all__ = [
    "parse_report_date",
    "CheckKind",
    "CheckRule",
    "CheckResult",
    "normalize_rules",
    "evaluate_checks",
    "TargetOutcome",
    "AggregateReport",
]
