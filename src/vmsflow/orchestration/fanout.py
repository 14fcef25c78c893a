"""
Fan-out Orchestrator for vmsflow.

Runs one logical query against many independent targets (recorders,
devices, servers) and joins every partial result and partial failure into
one AggregateReport keyed by entity id.

Two paths:
- run_local(): one work item per target through the LocalJobRunner, with
  the number of in-flight jobs bounded
- run_remote(): one server-side task per target, tracked with the
  RemoteTaskPoller

A failing target never stops the others, and every target that was
started appears in the report exactly once.
"""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Callable, Iterable, Mapping
from typing import Any, TypeVar

from vmsflow.core.config import FanOutConfig, VmsFlowConfig, get_config
from vmsflow.core.types import ErrorCategory, ErrorRecord, JobResult, RemoteTaskHandle, WorkItem
from vmsflow.jobs.pool import Job
from vmsflow.jobs.runner import LocalJobRunner
from vmsflow.orchestration.report import (
    AggregateReport,
    CheckRule,
    TargetOutcome,
    normalize_rules,
)
from vmsflow.remote.client import ClientFactory, RemoteTaskSubmitter
from vmsflow.remote.poller import RemoteTaskPoller
from vmsflow.remote.progress import ProgressReporter
from vmsflow.utils.errors import (
    DuplicateTargetError,
    InvalidTaskHandleError,
    PollRetryExhaustedError,
    PoolError,
    RunnerDisposedError,
    ValidationError,
)
from vmsflow.utils.logging import (
    LogContext,
    get_logger,
    log_completion,
    log_error,
    log_execution,
)

logger = get_logger(__name__)

T = TypeVar("T")


def _default_key(target: Any) -> str:
    return str(target)


class FanOutOrchestrator:
    """
    Composes the job runner and the remote poller into fan-out queries.

    Usage:
        with FanOutOrchestrator(runner=LocalJobRunner(max_workers=8)) as orchestrator:
            report = orchestrator.run_local(
                recorders,
                collect_statistics,
                key=lambda recorder: recorder.name,
                parameters={"counters": ["CPU", "Memory"]},
            )

        print(report.summary())
    """

    def __init__(
        self,
        runner: LocalJobRunner | None = None,
        poller: RemoteTaskPoller | None = None,
        *,
        config: FanOutConfig | None = None,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            runner: Job runner for local fan-out (created on demand if None)
            poller: Poller for remote fan-out (required by run_remote)
            config: Fan-out configuration
        """
        self._runner = runner
        self._owns_runner = runner is None
        self._poller = poller
        self._owns_poller = False
        self._config = config or FanOutConfig()

    @classmethod
    def from_config(
        cls,
        config: VmsFlowConfig | None = None,
        *,
        connect: ClientFactory | None = None,
        reporter: ProgressReporter | None = None,
    ) -> FanOutOrchestrator:
        """
        Build an orchestrator with its own runner (and poller, given connect).

        Args:
            config: Full configuration (default: the global configuration)
            connect: Channel factory for remote fan-out
            reporter: Progress sink for the poller
        """
        config = config or get_config()
        poller = (
            RemoteTaskPoller(connect, config.poller, reporter=reporter)
            if connect is not None
            else None
        )
        orchestrator = cls(LocalJobRunner.from_config(config), poller, config=config.fanout)
        orchestrator._owns_runner = True
        orchestrator._owns_poller = poller is not None
        return orchestrator

    # =========================================================================
    # Local Fan-out
    # =========================================================================

    def run_local(
        self,
        targets: Iterable[T],
        action: Callable[..., Any],
        *,
        key: Callable[[T], str] = _default_key,
        parameters: Mapping[str, Any] | None = None,
        checks: Mapping[str, Any] | Iterable[CheckRule] | None = None,
        name: str = "local",
    ) -> AggregateReport:
        """
        Run `action(target=..., **parameters)` once per target.

        At most max_in_flight jobs (default: pool capacity) are tracked at a
        time; a further target is submitted as soon as any job finishes.

        Args:
            targets: Targets to query
            action: Work to run per target
            key: Entity id for a target
            parameters: Extra keyword arguments passed to every call
            checks: Column checks applied to each target's output rows
            name: Report name

        Returns:
            AggregateReport with one outcome per target

        Raises:
            DuplicateTargetError: If two targets share a key (nothing is run)
            RunnerDisposedError: If the runner is disposed mid-run
        """
        keyed = self._key_targets(targets, key)
        rules = normalize_rules(checks)
        extra = dict(parameters or {})
        if "target" in extra:
            raise ValidationError("'target' is reserved for the fan-out target")

        runner = self._get_runner()
        limit = self._config.max_in_flight or runner.capacity
        report = AggregateReport(name=name)
        pending = deque(keyed)
        in_flight: list[Job] = []

        started = time.monotonic()

        with LogContext(fanout=name):
            log_execution(logger, "local fan-out", targets=len(keyed), max_in_flight=limit)
            while pending or in_flight:
                while pending and len(in_flight) < limit:
                    target_key, target = pending.popleft()
                    item = WorkItem(action, {"target": target, **extra}, key=target_key)
                    try:
                        in_flight.append(runner.add_job(item))
                    except PoolError as e:
                        log_error(logger, "submit", e, key=target_key)
                        report.add(
                            TargetOutcome(
                                key=target_key,
                                errors=[
                                    ErrorRecord.from_exception(
                                        e, target=target_key, category=ErrorCategory.SUBMISSION
                                    )
                                ],
                            )
                        )

                if not in_flight:
                    continue

                received = runner.receive_jobs(in_flight)
                if not received:
                    if runner.disposed:
                        raise RunnerDisposedError()
                    runner.wait_any(in_flight)
                    continue

                done = {result.job_id for result in received}
                in_flight = [job for job in in_flight if job.id not in done]
                for result in received:
                    report.add(self._local_outcome(result, rules))

            report.finish()
            log_completion(
                logger,
                "local fan-out",
                (time.monotonic() - started) * 1000,
                passed=len(report.passed),
                failed=len(report.failed),
            )
        return report

    def _local_outcome(self, result: JobResult, rules: list[CheckRule]) -> TargetOutcome:
        outcome = TargetOutcome(
            key=result.key or result.job_id,
            source="local",
            output=list(result.output),
            errors=list(result.errors),
            duration=result.duration,
        )
        if rules:
            outcome.apply_checks(rules)
        if not outcome.passed:
            logger.warning(
                "Target failed",
                key=outcome.key,
                errors=[error.message for error in outcome.errors],
            )
        return outcome

    # =========================================================================
    # Remote Fan-out
    # =========================================================================

    def run_remote(
        self,
        targets: Iterable[T],
        submit: RemoteTaskSubmitter,
        *,
        key: Callable[[T], str] = _default_key,
        cleanup: bool = False,
        name: str = "remote",
    ) -> AggregateReport:
        """
        Start one remote task per target and poll them all to completion.

        Submission failures, malformed handles, tasks ending in Error and an
        aborted poll are all recorded against the affected targets; the
        report is always returned.

        Args:
            targets: Targets to start tasks for
            submit: Starts the task for a target and returns its handle
            key: Entity id for a target
            cleanup: Clean up finished tasks on the server
            name: Report name

        Raises:
            DuplicateTargetError: If two targets share a key (nothing is submitted)
            ValidationError: If no poller was configured
        """
        if self._poller is None:
            raise ValidationError("run_remote() needs a RemoteTaskPoller")

        keyed = self._key_targets(targets, key)
        report = AggregateReport(name=name)
        waiting: dict[str, deque[str]] = {}
        handles: list[RemoteTaskHandle] = []
        started = time.monotonic()

        with LogContext(fanout=name):
            for target_key, target in keyed:
                try:
                    handle = RemoteTaskHandle.parse(submit(target))
                except InvalidTaskHandleError as e:
                    report.add(self._failed_remote(target_key, e, ErrorCategory.VALIDATION))
                    continue
                except Exception as e:
                    log_error(logger, "submit", e, key=target_key)
                    report.add(self._failed_remote(target_key, e, ErrorCategory.SUBMISSION))
                    continue
                waiting.setdefault(handle.path, deque()).append(target_key)
                handles.append(handle)

            log_execution(logger, "remote fan-out", targets=len(keyed), tasks=len(handles))
            try:
                for task in self._poller.poll(handles, cleanup=cleanup):
                    target_key = waiting[task.handle.path].popleft()
                    error = task.error
                    report.add(
                        TargetOutcome(
                            key=target_key,
                            source="remote",
                            output=[task.to_dict()],
                            errors=[error.with_target(target_key)] if error else [],
                            task_path=task.handle.path,
                            duration=time.monotonic() - started,
                        )
                    )
            except Exception as e:
                # Fatal for the poll, not for the report
                log_error(logger, "poll", e, unresolved=sum(len(keys) for keys in waiting.values()))
                category = (
                    ErrorCategory.COMMUNICATION
                    if isinstance(e, PollRetryExhaustedError)
                    else ErrorCategory.REMOTE_TASK
                )
                for path, keys in waiting.items():
                    while keys:
                        report.add(self._failed_remote(keys.popleft(), e, category, path))

            report.finish()
            log_completion(
                logger,
                "remote fan-out",
                (time.monotonic() - started) * 1000,
                passed=len(report.passed),
                failed=len(report.failed),
            )
        return report

    @staticmethod
    def _failed_remote(
        target_key: str,
        error: Exception,
        category: ErrorCategory,
        task_path: str | None = None,
    ) -> TargetOutcome:
        return TargetOutcome(
            key=target_key,
            source="remote",
            errors=[ErrorRecord.from_exception(error, target=target_key, category=category)],
            task_path=task_path,
        )

    # =========================================================================
    # Helpers and Lifecycle
    # =========================================================================

    @staticmethod
    def _key_targets(targets: Iterable[T], key: Callable[[T], str]) -> list[tuple[str, T]]:
        keyed: list[tuple[str, T]] = []
        seen: set[str] = set()
        for target in targets:
            target_key = str(key(target))
            if target_key in seen:
                raise DuplicateTargetError(target_key)
            seen.add(target_key)
            keyed.append((target_key, target))
        return keyed

    def _get_runner(self) -> LocalJobRunner:
        if self._runner is None:
            self._runner = LocalJobRunner()
        return self._runner

    def close(self) -> None:
        """Dispose the runner and close the poller if this orchestrator created them."""
        if self._owns_runner and self._runner is not None:
            self._runner.dispose()
            self._runner = None
        if self._owns_poller and self._poller is not None:
            self._poller.close()

    def __enter__(self) -> FanOutOrchestrator:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


__all__ = [
    "FanOutOrchestrator",
]
