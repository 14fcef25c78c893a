"""
Fan-out orchestration for vmsflow.

Provides:
- FanOutOrchestrator: one query across many targets, local or remote
- AggregateReport: per-target results and attributed errors
- Column checks and statistics series built from fan-out output
"""

from vmsflow.orchestration.fanout import FanOutOrchestrator
from vmsflow.orchestration.report import (
    AggregateReport,
    CheckKind,
    CheckResult,
    CheckRule,
    TargetOutcome,
    evaluate_checks,
    normalize_rules,
    parse_report_date,
)
from vmsflow.orchestration.statistics import (
    CounterSeries,
    StatisticSample,
    collect_statistics,
)

__all__ = [
    # Orchestrator
    "FanOutOrchestrator",
    # Report
    "AggregateReport",
    "TargetOutcome",
    "CheckKind",
    "CheckRule",
    "CheckResult",
    "evaluate_checks",
    "normalize_rules",
    "parse_report_date",
    # Statistics
    "StatisticSample",
    "CounterSeries",
    "collect_statistics",
]
