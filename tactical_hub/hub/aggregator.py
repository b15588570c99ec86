"""
Aggregation hub: lifecycle, the aggregation cycle and the external operations.

Lifecycle::

    stopped → starting → running ⇄ degraded → stopping → stopped

``degraded`` while the fraction of healthy sources is below
``min_healthy_source_fraction``; snapshots keep publishing, flagged with a
warning (or critical, when no source is healthy) ``overall_status``.

Threads
-------
  - one ``ConnectorWorker`` per polling connector, writing its own inbox;
  - one aggregation thread running ``_run_cycle`` every
    ``update_interval_ms``, the only writer of history, models, insights
    and the published snapshot;
  - callers of ``predict``, ``generate_insights`` and
    ``aggregate_history``, which read history under the cycle lock;
  - any number of subscriber threads reading through
    ``SnapshotSubscription``.

``start(run_workers=False)`` starts the hub without any threads; callers
then drive ``poll_sources()`` and ``force_aggregation()`` themselves.

One cycle
---------
  1. drain every inbox (derive status, flag out-of-order points);
  2. evaluate alert thresholds on the drained points;
  3. evict points and models past the retention window;
  4. refresh models and derive predictions;
  5. re-derive insights when due, when the metric set changed, or when a
     latest value moved by more than ``material_change_pct``;
  6. derive recommendations;
  7. compose the snapshot, swap it in, fan it out, hand it to the store.

A failure for one metric marks that metric degraded in the snapshot; it
never aborts the cycle.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import partial
from typing import Iterable, Optional

import numpy as np

from tactical_hub.config import AppConfig
from tactical_hub.errors import HubStateError, InsufficientDataError, InvalidConfigurationError
from tactical_hub.forecasting.engine import ForecastingEngine
from tactical_hub.hub.alerts import AlertManager
from tactical_hub.hub.broadcast import SnapshotBroadcaster, SnapshotSubscription
from tactical_hub.hub.buffer import HistoryBuffer, SourceInbox
from tactical_hub.hub.periods import aggregate_by_period
from tactical_hub.hub.rbac import can_view, filter_snapshot, normalize_modules
from tactical_hub.hub.workers import ConnectorWorker
from tactical_hub.ingestion.base import PollingConnector, PushConnector, SourceConnector
from tactical_hub.ingestion.health import ConnectorHealth
from tactical_hub.insights.generator import InsightGenerator
from tactical_hub.models.alert import Alert
from tactical_hub.models.datapoint import DataPoint, MetricSeries, PeriodAggregate
from tactical_hub.models.forecast import Prediction
from tactical_hub.models.insight import Insight
from tactical_hub.models.recommendation import (
    Recommendation,
    RecommendationContext,
    RecommendationFilters,
)
from tactical_hub.models.snapshot import (
    CategorySummary,
    HubState,
    MetricSummary,
    PipelineMetrics,
    Snapshot,
    SourceState,
    SourceStatus,
)
from tactical_hub.recommendations.engine import RecommendationEngine
from tactical_hub.store.base import MemoryStore, Store
from tactical_hub.taxonomy.metric_taxonomy import (
    AggregationPeriod,
    HealthStatus,
    MetricCategory,
    SourceKind,
    worst_status,
)
from tactical_hub.taxonomy.recommendation_taxonomy import AlertLevel
from tactical_hub.utils.time_utils import Clock, ms, utcnow

logger = logging.getLogger(__name__)

_BYTES_PER_POINT = 1024
_LIVE_STATES = (HubState.RUNNING, HubState.DEGRADED)


@dataclass(frozen=True)
class HubAck:
    """Result of a lifecycle call. ``changed`` is False for no-op repeats."""

    state: HubState
    changed: bool
    message: str = ""


class AggregationHub:
    """Orchestrates connectors, models and snapshot publication.

    Args:
        config: Full application configuration.
        connectors: Polling and/or push connectors; names must be unique.
        engine: Forecasting engine (built from ``config.forecast`` if omitted).
        insight_generator: Insight generator (built from config if omitted).
        recommendation_engine: Recommendation engine (built if omitted).
        store: Persistence collaborator (``MemoryStore`` if omitted).
        clock: Time source shared with the default collaborators.
    """

    def __init__(
        self,
        config: AppConfig,
        connectors: Iterable[SourceConnector] = (),
        engine: Optional[ForecastingEngine] = None,
        insight_generator: Optional[InsightGenerator] = None,
        recommendation_engine: Optional[RecommendationEngine] = None,
        store: Optional[Store] = None,
        clock: Clock = utcnow,
    ) -> None:
        self.config = config
        self.clock = clock
        self.engine = engine or ForecastingEngine(config.forecast, clock)
        self.insight_generator = insight_generator or InsightGenerator(
            config.insights, config.forecast, clock
        )
        self.recommendation_engine = recommendation_engine or RecommendationEngine(
            config.recommendations
        )
        self.store = store if store is not None else MemoryStore(config.store.memory_capacity)
        self.alerts = AlertManager(config.alerts, clock)
        self.history = HistoryBuffer(config.hub.buffer_size_per_source)
        self.broadcaster = SnapshotBroadcaster()

        self._connectors: dict[str, SourceConnector] = {}
        self._inboxes: dict[str, SourceInbox] = {}
        self._health: dict[str, ConnectorHealth] = {}
        self._workers: dict[str, ConnectorWorker] = {}
        for connector in connectors:
            self._register(connector)

        self._state = HubState.STOPPED
        self._state_lock = threading.RLock()
        self._cycle_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._aggregation_thread: Optional[threading.Thread] = None

        self._snapshot: Optional[Snapshot] = None
        self._cycle = 0
        self._predictions: list[Prediction] = []
        self._insights: list[Insight] = []
        self._recommendations: list[Recommendation] = []
        self._insight_audit: deque[Insight] = deque(maxlen=config.insights.audit_capacity)
        self._insight_labels: frozenset[str] = frozenset()
        self._insight_values: dict[str, float] = {}
        self._next_insight_evaluation: Optional[datetime] = None

    def _register(self, connector: SourceConnector) -> None:
        if connector.name in self._connectors:
            raise InvalidConfigurationError(f"Duplicate connector name '{connector.name}'.")
        cfg = self.config.connectors
        self._connectors[connector.name] = connector
        self._inboxes[connector.name] = SourceInbox(connector.name, self.config.hub.buffer_size_per_source)
        self._health[connector.name] = ConnectorHealth(
            name=connector.name,
            source=connector.source,
            failure_threshold=cfg.failure_threshold,
            backoff=cfg.backoff,
            stopped=True,
        )
        if isinstance(connector, PollingConnector):
            self._workers[connector.name] = ConnectorWorker(
                connector,
                self._inboxes[connector.name],
                self._health[connector.name],
                cfg.poll_interval_ms,
                self.clock,
            )

    # ── Lifecycle ────────────────────────────────────────────────────────────

    @property
    def state(self) -> HubState:
        with self._state_lock:
            return self._state

    def start(self, run_workers: bool = True) -> HubAck:
        """Start ingestion and, unless ``run_workers`` is False, the threads.

        Raises:
            HubStateError: If the hub is currently stopping.
        """
        with self._state_lock:
            if self._state in _LIVE_STATES:
                return HubAck(self._state, False, "already running")
            if self._state in (HubState.STARTING, HubState.STOPPING):
                raise HubStateError(f"Cannot start while {self._state.value}.")
            self._state = HubState.STARTING
            logger.info("Hub starting | sources=%d | workers=%s", len(self._connectors), run_workers)

            self._stop_event = threading.Event()
            for name, connector in self._connectors.items():
                self._inboxes[name].resume()
                self._health[name].stopped = False
                if isinstance(connector, PushConnector):
                    connector.start(partial(self._on_push, name), partial(self._on_push_error, name))

            if run_workers:
                for worker in self._workers.values():
                    worker.start()
                self._aggregation_thread = threading.Thread(
                    target=self._aggregation_loop, args=(self._stop_event,),
                    name="hub-aggregation", daemon=True,
                )
                self._aggregation_thread.start()

            self._state = HubState.RUNNING
        logger.info("Hub running")
        return HubAck(HubState.RUNNING, True)

    def stop(self, timeout: Optional[float] = None) -> HubAck:
        """Graceful stop: let the in-flight cycle finish (bounded), then tear down."""
        with self._state_lock:
            if self._state == HubState.STOPPED:
                return HubAck(HubState.STOPPED, False, "already stopped")
            if self._state == HubState.STOPPING:
                return HubAck(HubState.STOPPING, False, "stop in progress")
            self._state = HubState.STOPPING
        logger.info("Hub stopping")

        timeout = timeout if timeout is not None else self.config.hub.shutdown_timeout_ms / 1000.0
        deadline = time.monotonic() + timeout
        self._stop_event.set()
        for worker in self._workers.values():
            worker.signal_stop()

        thread = self._aggregation_thread
        if thread is not None:
            thread.join(max(0.0, deadline - time.monotonic()))
            if thread.is_alive():
                logger.warning("In-flight aggregation cycle abandoned after %.1fs", timeout)
        for name, worker in self._workers.items():
            if not worker.join(max(0.0, deadline - time.monotonic())):
                logger.warning("%s: worker did not stop within the shutdown timeout", name)

        self._teardown_connectors()
        with self._state_lock:
            self._state = HubState.STOPPED
            self._aggregation_thread = None
            self._mark_stale_locked()
        logger.info("Hub stopped")
        return HubAck(HubState.STOPPED, True)

    def emergency_stop(self) -> HubAck:
        """Halt ingestion immediately; the last snapshot stays servable as stale."""
        with self._state_lock:
            if self._state == HubState.STOPPED:
                return HubAck(HubState.STOPPED, False, "already stopped")
            for inbox in self._inboxes.values():
                inbox.halt()
            self._stop_event.set()
            for worker in self._workers.values():
                worker.signal_stop()
            self._state = HubState.STOPPED
            self._aggregation_thread = None
            self._mark_stale_locked()
        self._teardown_connectors()
        logger.warning("Hub emergency stop: ingestion halted")
        return HubAck(HubState.STOPPED, True, "emergency stop")

    def _teardown_connectors(self) -> None:
        for name, connector in self._connectors.items():
            self._inboxes[name].halt()
            self._health[name].stopped = True
            try:
                if isinstance(connector, PushConnector):
                    connector.stop()
                elif isinstance(connector, PollingConnector):
                    connector.close()
            except Exception as exc:
                logger.error("%s: teardown failed: %s", name, exc)

    def _mark_stale_locked(self) -> None:
        if self._snapshot is not None and self._snapshot.stale_since is None:
            self._snapshot = self._snapshot.model_copy(update={
                "stale_since": self.clock(),
                "hub_state": HubState.STOPPED,
            })
            self.broadcaster.publish(self._snapshot)
        self.broadcaster.close_all()

    def _on_push(self, name: str, points: list[DataPoint]) -> None:
        self._inboxes[name].offer(points)
        self._health[name].record_success(self.clock())

    def _on_push_error(self, name: str, error: Exception) -> None:
        logger.warning("%s: push feed error: %s", name, error)
        self._health[name].record_failure(self.clock(), error)

    def _aggregation_loop(self, stop_event: threading.Event) -> None:
        interval = self.config.hub.update_interval_ms / 1000.0
        while not stop_event.wait(interval):
            try:
                self._run_cycle()
            except Exception as exc:
                logger.exception("Aggregation cycle failed: %s", exc)

    # ── Manual drive ─────────────────────────────────────────────────────────

    def poll_sources(self, now: Optional[datetime] = None) -> int:
        """Poll every polling connector once; returns points handed over.

        Raises:
            HubStateError: If the hub is not running.
        """
        self._require_live("poll sources")
        return sum(worker.poll_once(now) for worker in self._workers.values())

    def force_aggregation(self) -> Snapshot:
        """Run one cycle synchronously and return the published snapshot.

        Raises:
            HubStateError: If the hub is not running.
        """
        self._require_live("force aggregation")
        return self._run_cycle()

    def _require_live(self, action: str) -> None:
        state = self.state
        if state not in _LIVE_STATES:
            raise HubStateError(f"Cannot {action} while {state.value}.")

    # ── Aggregation cycle ────────────────────────────────────────────────────

    def _run_cycle(self) -> Snapshot:
        with self._cycle_lock:
            started = time.perf_counter()
            now = self.clock()
            degraded: dict[str, str] = {}

            drained = self._drain()
            for alert in self.alerts.evaluate_cycle(drained, now):
                self._persist(self.store.save_alert, alert)

            retention = ms(self.config.hub.retention_period_ms)
            self.history.evict_older_than(now - retention)
            self.engine.discard_inactive(now, retention)

            series = self.history.series()
            report = self.engine.refresh(series, now)
            for (source, metric), error in report.failed.items():
                degraded[f"{source.value}/{metric}"] = error

            predictions: list[Prediction] = []
            for model in self.engine.models():
                try:
                    predictions.append(self.engine.predict(model, self.config.forecast.default_horizon))
                except Exception as exc:
                    label = f"{model.source.value}/{model.metric}"
                    logger.error("Prediction failed for %s: %s", label, exc)
                    degraded[label] = str(exc)

            insights = self._refresh_insights(predictions, series, now, degraded)
            surfaced = [i for i in insights if i.surfaced]
            run = self.recommendation_engine.run(predictions, surfaced)
            degraded.update(run.failed)

            self._predictions = predictions
            self._recommendations = run.recommendations

            latency_ms = (time.perf_counter() - started) * 1000.0
            snapshot = self._compose(now, predictions, surfaced, run.recommendations, degraded, latency_ms)
            if self._publish(snapshot):
                self._persist(self.store.save_snapshot, snapshot)
            logger.info(
                "Cycle %d | drained=%d | buffered=%d | predictions=%d | insights=%d | "
                "recommendations=%d | state=%s | %.1fms",
                snapshot.cycle, len(drained), len(self.history), len(predictions),
                len(surfaced), len(run.recommendations), snapshot.hub_state.value, latency_ms,
            )
            return snapshot

    def _drain(self) -> list[DataPoint]:
        drained: list[DataPoint] = []
        for name in sorted(self._inboxes):
            for point in self._inboxes[name].drain():
                status = (
                    self.alerts.status_for(point.metric, point.value)
                    if point.is_finite else HealthStatus.HEALTHY
                )
                if status != point.status:
                    point = point.model_copy(update={"status": status})
                drained.append(self.history.append(point))
        return drained

    def _refresh_insights(
        self,
        predictions: list[Prediction],
        series: list[MetricSeries],
        now: datetime,
        degraded: dict[str, str],
    ) -> list[Insight]:
        latest = _latest_values(series)
        labels = frozenset(latest)
        due = self._next_insight_evaluation is None or now >= self._next_insight_evaluation
        metric_set_changed = labels != self._insight_labels
        material = self._material_change(latest)
        if not (due or metric_set_changed or material):
            return self._insights

        run = self.insight_generator.run(predictions, series, now=now)
        degraded.update(run.failed)
        self._insights = run.insights
        self._insight_audit.extend(i for i in run.insights if not i.surfaced)
        self._insight_labels = labels
        self._insight_values = latest
        interval = ms(self.config.insights.reevaluation_interval_ms)
        self._next_insight_evaluation = (
            min(i.next_evaluation for i in run.insights) if run.insights else now + interval
        )
        if run.insights:
            self._persist(self.store.save_insights, run.insights)
        logger.debug(
            "Insights re-derived | due=%s | metric_set_changed=%s | material=%s",
            due, metric_set_changed, material,
        )
        return self._insights

    def _material_change(self, latest: dict[str, float]) -> bool:
        threshold = self.config.insights.material_change_pct
        for label, value in latest.items():
            previous = self._insight_values.get(label)
            if previous is None:
                continue
            if abs(value - previous) / max(abs(previous), 1e-9) > threshold:
                return True
        return False

    # ── Snapshot composition ─────────────────────────────────────────────────

    def _compose(
        self,
        now: datetime,
        predictions: list[Prediction],
        insights: list[Insight],
        recommendations: list[Recommendation],
        degraded: dict[str, str],
        latency_ms: float,
    ) -> Snapshot:
        sources = tuple(self._health[name].to_status() for name in sorted(self._health))
        state = self._update_state(sources)
        categories = self._category_summaries()
        alerts = tuple(self.alerts.active())
        overall = self._overall_status(state, sources, categories, alerts)

        self._cycle += 1
        buffered = len(self.history)
        return Snapshot(
            snapshot_id=f"snap-{self._cycle:06d}",
            cycle=self._cycle,
            generated_at=now,
            hub_state=state,
            overall_status=overall,
            categories=categories,
            latest_points=tuple(self.history.latest_points()),
            alerts=alerts,
            predictions=tuple(predictions),
            insights=tuple(insights),
            recommendations=tuple(recommendations),
            sources=sources,
            degraded_metrics=tuple(sorted(degraded)),
            performance=PipelineMetrics(
                active_sources=sum(1 for s in sources if s.state == SourceState.HEALTHY),
                total_sources=len(sources),
                degraded_sources=tuple(s.name for s in sources if s.state == SourceState.DEGRADED),
                buffered_points=buffered,
                dropped_points=self.history.evicted + sum(i.dropped for i in self._inboxes.values()),
                aggregation_latency_ms=round(latency_ms, 3),
                memory_estimate_mb=round(buffered * _BYTES_PER_POINT / (1024 * 1024), 4),
                subscribers=len(self.broadcaster),
                models_ready=len(self.engine.models()),
            ),
        )

    def _update_state(self, sources: tuple[SourceStatus, ...]) -> HubState:
        with self._state_lock:
            if self._state not in _LIVE_STATES:
                return self._state
            healthy = sum(1 for s in sources if s.state == SourceState.HEALTHY)
            fraction = healthy / len(sources) if sources else 1.0
            target = (
                HubState.DEGRADED
                if fraction < self.config.hub.min_healthy_source_fraction
                else HubState.RUNNING
            )
            if target != self._state:
                logger.warning(
                    "Hub %s → %s (%d/%d sources healthy)",
                    self._state.value, target.value, healthy, len(sources),
                )
                self._state = target
            return self._state

    def _category_summaries(self) -> tuple[CategorySummary, ...]:
        by_category: dict[MetricCategory, list[MetricSummary]] = {}
        # one summary per tag set, so a reader only sees stats over points it may view
        latest = {(p.key, p.module_access): p for p in self.history.latest_points(by_access=True)}
        for series in self.history.series(by_access=True):
            summary = _summarize_series(series, latest.get((series.key, series.module_access)))
            if summary is not None:
                by_category.setdefault(summary.category, []).append(summary)
        return tuple(
            CategorySummary(
                category=category,
                status=worst_status(m.status for m in metrics),
                point_count=sum(m.count for m in metrics),
                metrics=tuple(metrics),
            )
            for category, metrics in sorted(by_category.items(), key=lambda kv: kv[0].value)
        )

    @staticmethod
    def _overall_status(
        state: HubState,
        sources: tuple[SourceStatus, ...],
        categories: tuple[CategorySummary, ...],
        alerts: tuple[Alert, ...],
    ) -> HealthStatus:
        statuses = [c.status for c in categories]
        statuses.extend(
            HealthStatus.CRITICAL if a.level == AlertLevel.CRITICAL else HealthStatus.WARNING
            for a in alerts
        )
        if state == HubState.DEGRADED:
            no_healthy = not any(s.state == SourceState.HEALTHY for s in sources)
            statuses.append(HealthStatus.CRITICAL if no_healthy else HealthStatus.WARNING)
        return worst_status(statuses)

    def _publish(self, snapshot: Snapshot) -> bool:
        with self._state_lock:
            if self._state == HubState.STOPPED:
                logger.info("Discarding snapshot %s composed after stop", snapshot.snapshot_id)
                return False
            self._snapshot = snapshot
            self.broadcaster.publish(snapshot)
        return True

    def _persist(self, method, payload) -> None:
        try:
            method(payload)
        except Exception as exc:
            logger.error("Store %s failed: %s", method.__name__, exc)

    # ── External operations ──────────────────────────────────────────────────

    def get_snapshot(self, caller_modules: Optional[Iterable[str]] = None) -> Snapshot:
        """Latest snapshot, RBAC-filtered when ``caller_modules`` is given.

        Never blocks on the next cycle; before the first cycle an empty
        snapshot describing the current sources is returned.
        """
        with self._state_lock:
            snapshot = self._snapshot
            if snapshot is None:
                snapshot = Snapshot(
                    snapshot_id="snap-000000",
                    cycle=0,
                    generated_at=self.clock(),
                    hub_state=self._state,
                    overall_status=HealthStatus.HEALTHY,
                    sources=tuple(self._health[n].to_status() for n in sorted(self._health)),
                    performance=PipelineMetrics(total_sources=len(self._health)),
                )
        if caller_modules is None:
            return snapshot
        return filter_snapshot(snapshot, caller_modules)

    def stream_snapshots(self, caller_modules: Iterable[str]) -> SnapshotSubscription:
        """Subscribe to every future snapshot; the latest one is delivered first.

        On a stopped hub the subscription holds only the stale snapshot (if
        any) and is already closed, so iterating it ends after one item.
        """
        with self._state_lock:
            subscription = self.broadcaster.subscribe(caller_modules, initial=self._snapshot)
            if self._state == HubState.STOPPED:
                subscription.close()
        return subscription

    def get_active_alerts(self) -> list[Alert]:
        return self.alerts.active()

    def acknowledge_alert(self, alert_id: str, actor: str) -> Alert:
        """Acknowledge an alert.

        Raises:
            UnknownAlertError: If no alert has ``alert_id``.
            AlertStateConflictError: If the alert is already resolved.
        """
        alert = self.alerts.acknowledge(alert_id, actor)
        self._persist(self.store.save_alert, alert)
        return alert

    def predict(
        self,
        metric: str,
        horizon: Optional[int] = None,
        source: Optional[SourceKind] = None,
    ) -> Prediction:
        """Forecast ``metric``, fitting on demand if no model exists yet.

        Raises:
            InsufficientDataError: If the metric has too few clean samples.
            ValueError: If ``horizon`` < 1.
        """
        horizon = self.config.forecast.default_horizon if horizon is None else horizon
        if horizon < 1:
            raise ValueError(f"horizon must be >= 1, got {horizon}.")
        source = SourceKind(source) if source is not None else None
        model = self.engine.find_model(metric, source)
        if model is None:
            with self._cycle_lock:
                buffered = self.history.series()
            candidates = [
                s for s in buffered
                if s.metric == metric and (source is None or s.source == source)
            ]
            if not candidates:
                raise InsufficientDataError(
                    metric, 0, self.config.forecast.min_samples,
                    source.value if source is not None else None,
                )
            series = max(candidates, key=lambda s: (len(s.values), s.source.value))
            model = self.engine.fit(series, self.clock())
        return self.engine.predict(model, horizon)

    def generate_insights(self, window: Optional[timedelta] = None) -> list[Insight]:
        """Surfaced insights over the buffered history (optionally the last ``window``)."""
        now = self.clock()
        with self._cycle_lock:
            series = self.history.series()
        if window is not None:
            series = [s.since(now - window) for s in series]
            series = [s for s in series if s.values]
        run = self.insight_generator.run(list(self._predictions), series, now=now)
        return run.surfaced

    def aggregate_history(
        self,
        period: AggregationPeriod | str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        categories: Optional[Iterable[MetricCategory | str]] = None,
        sources: Optional[Iterable[SourceKind | str]] = None,
        caller_modules: Optional[Iterable[str]] = None,
    ) -> dict[str, list[PeriodAggregate]]:
        """Buffered history rolled up by day, week or month.

        Only points visible to ``caller_modules`` are counted when it is
        given. Buckets are keyed by period and ordered oldest first.

        Raises:
            ValueError: On an unknown period, category or source, or when
                ``start`` is after ``end``.
        """
        with self._cycle_lock:
            points = self.history.all_points()
        if caller_modules is not None:
            caller = normalize_modules(caller_modules)
            points = [p for p in points if can_view(p.module_access, caller)]
        grouped = aggregate_by_period(points, period, start, end, categories, sources)
        logger.debug("History aggregated by %s | buckets=%d", period, len(grouped))
        return grouped

    def generate_recommendations(
        self,
        context: Optional[RecommendationContext] = None,
        filters: Optional[RecommendationFilters] = None,
    ) -> list[Recommendation]:
        """Recommendations from the current predictions and surfaced insights."""
        surfaced = [i for i in self._insights if i.surfaced]
        return self.recommendation_engine.generate(list(self._predictions), surfaced, context, filters)

    def insight_audit(self) -> list[Insight]:
        """Insights derived below the surfacing floor, kept for audit."""
        return list(self._insight_audit)

    def source_statuses(self) -> list[SourceStatus]:
        return [self._health[name].to_status() for name in sorted(self._health)]

    @property
    def inboxes(self) -> dict[str, SourceInbox]:
        return dict(self._inboxes)


def _latest_values(series: list[MetricSeries]) -> dict[str, float]:
    latest: dict[str, float] = {}
    for s in series:
        _, values, _ = s.clean()
        if values:
            latest[s.label] = values[-1]
    return latest


def _summarize_series(series: MetricSeries, latest: Optional[DataPoint]) -> Optional[MetricSummary]:
    stamps, values, _ = series.clean()
    if not values:
        return None
    y = np.asarray(values, dtype=float)
    first = float(y[0])
    return MetricSummary(
        source=series.source,
        metric=series.metric,
        category=series.category,
        latest_value=float(y[-1]),
        latest_at=stamps[-1],
        mean=round(float(y.mean()), 6),
        minimum=float(y.min()),
        maximum=float(y.max()),
        count=len(values),
        status=latest.status if latest is not None else HealthStatus.HEALTHY,
        change_pct=round((float(y[-1]) - first) / max(abs(first), 1e-9), 6),
        module_access=series.module_access,
    )
