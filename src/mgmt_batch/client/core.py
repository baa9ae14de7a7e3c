"""批量编排器：分批、受限并发派发、逐项重试与结果对账。

Batch orchestrator.

Partitions request units into envelopes, dispatches them with bounded
concurrency, retries throttled and transient failures per unit, and
reconciles every unit's final outcome by correlation key.
"""

from __future__ import annotations

import random
import time
from typing import TYPE_CHECKING, Any

from mgmt_batch.batch import Dispatcher, partition
from mgmt_batch.batch.partition import BatchSizePolicy
from mgmt_batch.client.cancel import CancelReason, CancelToken
from mgmt_batch.client.options import OrchestratorOptions
from mgmt_batch.client.reconciler import ResultReconciler
from mgmt_batch.client.response import RunResult, RunStatistics
from mgmt_batch.errors import TransportError
from mgmt_batch.resilience import RetryCoordinator, RetryPolicy
from mgmt_batch.telemetry import (
    LogContext,
    get_log_context,
    get_logger,
    set_log_context,
)
from mgmt_batch.types.outcome import Outcome, OutcomeKind

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from mgmt_batch.batch.dispatcher import DispatchResult
    from mgmt_batch.client.builder import BatchOrchestratorBuilder
    from mgmt_batch.client.reconciler import ReconcilerSnapshot
    from mgmt_batch.resilience.coordinator import Transition
    from mgmt_batch.transport.base import BatchTransport
    from mgmt_batch.types.request import RequestUnit

logger = get_logger("mgmt_batch.client.core")


class _RunState:
    """Everything one ``submit()`` call owns.

    Only the orchestration loop touches the coordinator and the reconciler,
    so every unit's state has a single writer.
    """

    def __init__(
        self,
        units: list[RequestUnit],
        options: OrchestratorOptions,
        transport: BatchTransport,
        rng: random.Random | None,
        on_progress: Callable[[ReconcilerSnapshot], Any] | None,
    ) -> None:
        self.options = options
        self.coordinator = RetryCoordinator(
            RetryPolicy(options.retry_config(), rng=rng or random.Random()),
            BatchSizePolicy(options.max_batch_size),
        )
        # Raises on duplicate keys before anything is sent
        self.coordinator.register(units)
        self.reconciler = ResultReconciler(u.correlation_key for u in units)
        self.dispatcher = Dispatcher(transport, options.concurrency_limit)
        self.token = CancelToken()
        self.statistics = RunStatistics(submitted=len(units))
        self.on_progress = on_progress
        self.next_envelope_id = 0
        self.generation = 0

    def dispatch_ready(self) -> None:
        """Partition every eligible unit into fresh envelopes and queue them."""
        ready = self.coordinator.take_ready(time.monotonic())
        if not ready:
            return
        envelopes = partition(
            ready,
            self.coordinator.batch_size,
            first_envelope_id=self.next_envelope_id,
            generation=self.generation,
        )
        self.next_envelope_id += len(envelopes)
        self.generation += 1
        for envelope in envelopes:
            self.dispatcher.submit(envelope)

    def wait_timeout(self) -> float | None:
        wakeup = self.coordinator.next_wakeup()
        if wakeup is None:
            return None
        return max(0.0, wakeup - time.monotonic())

    def apply(self, results: list[DispatchResult]) -> None:
        """Feed finished batch calls through the coordinator into the reconciler."""
        for result in results:
            now = time.monotonic()
            envelope = result.envelope
            response = result.response
            if response is None:
                error = result.error or TransportError("batch call returned no response")
                transitions = self.coordinator.record_envelope_failure(envelope, error, now)
            else:
                self.coordinator.observe_envelope(payload_rejected=False)
                items = response.by_key()
                transitions = []
                for key in envelope.keys:
                    item = items.get(key)
                    if item is not None:
                        outcome = item.to_outcome()
                    else:
                        outcome = Outcome.transport_failure(
                            "item missing from batch response",
                            status_code=response.status_code,
                        )
                    transitions.append(self.coordinator.record_outcome(key, outcome, now))

            self._record(transitions)
            logger.debug(
                "Envelope completed",
                envelope_id=envelope.envelope_id,
                generation=envelope.generation,
                units=len(envelope),
                ok=result.ok,
                elapsed_ms=round(result.elapsed_ms, 1),
            )
            self._report_progress()

    def _record(self, transitions: list[Transition]) -> None:
        retried = [t for t in transitions if not t.is_terminal]
        for transition in transitions:
            if transition.is_terminal:
                self.reconciler.record(transition.key, transition.outcome)

        if retried:
            throttled = sum(1 for t in retried if t.outcome.kind is OutcomeKind.THROTTLED)
            logger.info(
                "Retries scheduled",
                units=len(retried),
                throttled=throttled,
                max_delay_s=round(max(t.delay or 0.0 for t in retried), 3),
            )

    def _report_progress(self) -> None:
        if self.on_progress is None:
            return
        try:
            self.on_progress(self.reconciler.snapshot())
        except Exception:
            logger.exception("Progress callback failed")

    async def shut_down(self, reason: CancelReason) -> None:
        """Stop scheduling, let in-flight calls finish and cancel the rest."""
        logger.warning(
            "Run cancelled",
            reason=reason.value,
            pending=self.coordinator.pending_count,
            in_flight=self.coordinator.in_flight_count,
        )
        self.coordinator.stop()
        for envelope in self.dispatcher.stop():
            self.coordinator.release(envelope.units)

        await self.dispatcher.join()
        self.apply(self.dispatcher.drain_completed())

        cause = "deadline elapsed" if reason is CancelReason.DEADLINE else "run cancelled"
        self._record(self.coordinator.cancel_pending(cause))
        if reason is CancelReason.DEADLINE:
            self.reconciler.mark_deadline_elapsed()

    def finish(self, started: float) -> RunResult:
        leftover = self.coordinator.cancel_remaining("no outcome recorded")
        if leftover:
            logger.warning("Units left without outcome", units=len(leftover))
            self._record(leftover)

        counts = self.reconciler.counts()
        coordinator_stats = self.coordinator.stats
        dispatcher_stats = self.dispatcher.stats()

        statistics = self.statistics
        statistics.succeeded = counts.get(OutcomeKind.SUCCESS, 0)
        statistics.permanently_failed = counts.get(OutcomeKind.PERMANENT_FAILURE, 0)
        statistics.cancelled = counts.get(OutcomeKind.CANCELLED, 0)
        statistics.throttled = coordinator_stats.throttled
        statistics.attempts = coordinator_stats.attempts
        statistics.retries = coordinator_stats.retries
        statistics.transport_failures = coordinator_stats.transport_failures
        statistics.batch_size_reductions = self.coordinator.batch_size_reductions
        statistics.final_batch_size = self.coordinator.batch_size
        statistics.envelopes_sent = dispatcher_stats["envelopes_sent"]
        statistics.peak_in_flight = dispatcher_stats["peak_in_flight"]
        statistics.elapsed = time.monotonic() - started

        return RunResult(outcomes=self.reconciler.ordered_outcomes(), statistics=statistics)


class BatchOrchestrator:
    """Runs many independent management-plane requests through a batch endpoint.

    Each call to ``submit()`` is an independent run: every submitted unit
    comes back with exactly one terminal outcome, and per-unit failures
    never abort the run.

    Example:
        >>> transport = ArmBatchTransport(EnvironmentTokenProvider())
        >>> orchestrator = BatchOrchestrator(transport, {"maxBatchSize": 20})
        >>> result = await orchestrator.submit(units)
        >>> result.statistics.succeeded
        37
    """

    def __init__(
        self,
        transport: BatchTransport,
        options: OrchestratorOptions | Mapping[str, Any] | None = None,
        *,
        rng: random.Random | None = None,
        owns_transport: bool = False,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            transport: Sends one batch call per envelope
            options: Default options for runs (None = defaults)
            rng: Random source for retry jitter
            owns_transport: Close the transport in ``close()``

        Raises:
            ConfigurationError: If the options are invalid
        """
        self._transport = transport
        self._options = OrchestratorOptions.coerce(options)
        self._rng = rng
        self._owns_transport = owns_transport
        self._current: _RunState | None = None

    @classmethod
    def builder(cls) -> BatchOrchestratorBuilder:
        """Create a builder for custom configuration.

        Example:
            >>> orchestrator = (
            ...     BatchOrchestrator.builder()
            ...     .token_provider(EnvironmentTokenProvider())
            ...     .max_batch_size(20)
            ...     .build()
            ... )
        """
        from mgmt_batch.client.builder import BatchOrchestratorBuilder

        return BatchOrchestratorBuilder()

    @property
    def options(self) -> OrchestratorOptions:
        return self._options

    @property
    def transport(self) -> BatchTransport:
        return self._transport

    async def submit(
        self,
        units: Iterable[RequestUnit],
        options: OrchestratorOptions | Mapping[str, Any] | None = None,
        *,
        cancel_token: CancelToken | None = None,
        on_progress: Callable[[ReconcilerSnapshot], Any] | None = None,
    ) -> RunResult:
        """Run every unit to a terminal outcome.

        Args:
            units: Units in submission order; correlation keys must be unique
            options: Options for this run (defaults to the orchestrator's)
            cancel_token: Cancels the run when triggered
            on_progress: Called with a snapshot after every finished batch call

        Returns:
            Outcome per correlation key (submission order) and run statistics

        Raises:
            ConfigurationError: On invalid options or duplicate correlation keys
            TypeError: If a unit is not a RequestUnit
        """
        run_options = self._options if options is None else OrchestratorOptions.coerce(options)
        unit_list = list(units)
        run = _RunState(unit_list, run_options, self._transport, self._rng, on_progress)
        self._current = run

        previous_context = get_log_context()
        set_log_context(LogContext(run_id=run.statistics.run_id))

        def forward(reason: CancelReason) -> None:
            run.token.cancel(reason)

        def wake(_reason: CancelReason) -> None:
            run.dispatcher.notify()

        run.token.on_cancel(wake)
        if cancel_token is not None:
            cancel_token.on_cancel(forward)

        started = time.monotonic()
        logger.info(
            "Run started",
            units=len(unit_list),
            **run_options.to_dict(),
        )
        try:
            if run_options.deadline is not None:
                run.token.cancel_after(run_options.deadline)

            while not run.coordinator.is_settled:
                if run.token.is_cancelled:
                    await run.shut_down(run.token.reason or CancelReason.USER_REQUEST)
                    break
                run.dispatch_ready()
                await run.dispatcher.wait_for_activity(run.wait_timeout())
                run.apply(run.dispatcher.drain_completed())

            result = run.finish(started)
        finally:
            run.token.clear_deadline()
            if cancel_token is not None:
                cancel_token.remove_callback(forward)
            set_log_context(previous_context)

        stats = result.statistics
        logger.info(
            "Run finished",
            succeeded=stats.succeeded,
            permanently_failed=stats.permanently_failed,
            cancelled=stats.cancelled,
            throttled=stats.throttled,
            retries=stats.retries,
            envelopes_sent=stats.envelopes_sent,
            elapsed_ms=round(stats.elapsed_ms, 1),
            run_id=stats.run_id,
        )
        return result

    def snapshot(self) -> ReconcilerSnapshot | None:
        """Live snapshot of the latest run (None before the first run)."""
        if self._current is None:
            return None
        return self._current.reconciler.snapshot()

    async def close(self) -> None:
        """Close the transport if this orchestrator created it."""
        if self._owns_transport:
            close = getattr(self._transport, "close", None)
            if close is not None:
                await close()

    async def __aenter__(self) -> BatchOrchestrator:
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()


async def run_batch(
    units: Iterable[RequestUnit],
    transport: BatchTransport,
    *,
    cancel_token: CancelToken | None = None,
    **options: Any,
) -> RunResult:
    """Run units through a transport in one call.

    Example:
        >>> result = await run_batch(units, transport, max_batch_size=10, deadline=60)

    Args:
        units: Units in submission order
        transport: Batch transport
        cancel_token: Cancels the run when triggered
        **options: OrchestratorOptions fields (snake_case or camelCase)

    Returns:
        Run result
    """
    orchestrator = BatchOrchestrator(transport, OrchestratorOptions.from_mapping(options))
    return await orchestrator.submit(units, cancel_token=cancel_token)
