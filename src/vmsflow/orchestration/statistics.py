"""
Statistics fan-out helpers.

Turns the sample rows returned by a statistics fan-out (one work item per
recorder) into per-counter, per-recorder time series.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from vmsflow.orchestration.report import AggregateReport, parse_report_date
from vmsflow.utils.errors import ValidationError
from vmsflow.utils.logging import get_logger

logger = get_logger(__name__)

_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "counter": ("counter", "countername", "path"),
    "timestamp": ("timestamp", "time"),
    "value": ("value", "cookedvalue"),
    "maximum": ("maximum", "max"),
}


def _parse_timestamp(value: Any) -> datetime:
    parsed = parse_report_date(value)
    if parsed is not None:
        return parsed
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip().rstrip("Z"))
        except ValueError:
            pass
    raise ValidationError(f"Unrecognized sample timestamp: {value!r}")


@dataclass(frozen=True)
class StatisticSample:
    """One counter reading taken on one entity."""

    counter: str
    key: str
    timestamp: datetime
    value: float
    maximum: float | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], key: str) -> StatisticSample:
        """
        Build a sample from a result row.

        Field names are matched case-insensitively; `TimeStamp`, `Value`
        and `Max` spellings are accepted.
        """
        lowered = {str(name).lower(): value for name, value in data.items()}

        def pick(field_name: str) -> Any:
            for alias in _FIELD_ALIASES[field_name]:
                if alias in lowered:
                    return lowered[alias]
            return None

        counter = pick("counter")
        raw_value = pick("value")
        raw_time = pick("timestamp")
        if counter is None or raw_value is None or raw_time is None:
            raise ValidationError(
                "Sample rows need counter, timestamp and value fields",
                {"fields": sorted(lowered)},
            )
        maximum = pick("maximum")
        try:
            value = float(raw_value)
            maximum = float(maximum) if maximum is not None else None
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Non-numeric sample value: {raw_value!r}") from e
        return cls(
            counter=str(counter),
            key=key,
            timestamp=_parse_timestamp(raw_time),
            value=value,
            maximum=maximum,
        )


@dataclass
class CounterSeries:
    """Time-ordered readings of one counter on one entity."""

    counter: str
    key: str
    timestamps: list[datetime] = field(default_factory=list)
    values: list[float] = field(default_factory=list)
    maximum: float | None = None

    @property
    def latest(self) -> float | None:
        return self.values[-1] if self.values else None

    @property
    def peak(self) -> float | None:
        return max(self.values) if self.values else None

    def __len__(self) -> int:
        return len(self.values)

    def to_dict(self) -> dict[str, Any]:
        return {
            "counter": self.counter,
            "key": self.key,
            "timestamps": [stamp.isoformat() for stamp in self.timestamps],
            "values": list(self.values),
            "maximum": self.maximum,
        }


def collect_statistics(report: AggregateReport) -> dict[str, dict[str, CounterSeries]]:
    """
    Group every sample in a report by counter, then by entity key.

    Outputs that are not samples are ignored: values that are neither
    StatisticSample nor mappings, mappings without counter, timestamp and
    value fields (task status rows, audit rows) and targets that failed to
    produce any output. Samples are attributed to the target that
    returned them.

    Returns:
        {counter: {entity key: CounterSeries}}, series sorted by timestamp
    """
    grouped: dict[str, dict[str, list[StatisticSample]]] = {}
    skipped = 0
    for key, outcome in report.outcomes.items():
        for item in outcome.output:
            if isinstance(item, StatisticSample):
                sample = item if item.key == key else StatisticSample(
                    item.counter, key, item.timestamp, item.value, item.maximum
                )
            elif isinstance(item, Mapping):
                try:
                    sample = StatisticSample.from_mapping(item, key)
                except ValidationError as e:
                    logger.debug("Skipping non-sample row", key=key, reason=e.message)
                    skipped += 1
                    continue
            else:
                continue
            grouped.setdefault(sample.counter, {}).setdefault(key, []).append(sample)

    if skipped:
        logger.info("Rows without sample fields ignored", skipped=skipped)

    series: dict[str, dict[str, CounterSeries]] = {}
    for counter, by_key in grouped.items():
        series[counter] = {}
        for key, samples in by_key.items():
            samples.sort(key=lambda s: s.timestamp)
            maxima = [s.maximum for s in samples if s.maximum is not None]
            series[counter][key] = CounterSeries(
                counter=counter,
                key=key,
                timestamps=[s.timestamp for s in samples],
                values=[s.value for s in samples],
                maximum=maxima[-1] if maxima else None,
            )
    return series


__all__ = [
    "StatisticSample",
    "CounterSeries",
    "collect_statistics",
]
