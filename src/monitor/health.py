"""Health checks — module availability, alert backlog, metric spikes, performance.

Each check returns a dict with a ``healthy`` flag plus its own details;
:func:`run_health_check` folds them into one report.
"""

from __future__ import annotations

import logging
from typing import Any

from src.contracts.alert import Alert
from src.contracts.enums import AlertStatus, HealthStatus, Severity
from src.monitor.config import MonitorConfig
from src.monitor.metrics import EventTypeMetrics, is_spike
from src.monitor.state import PerformanceCounters

log = logging.getLogger(__name__)


def performance_snapshot(perf: PerformanceCounters, now: float) -> dict[str, Any]:
    uptime = max(0.0, now - perf.started_at)
    eps = perf.event_count / uptime if perf.event_count and uptime > 0 else 0.0
    return {
        "uptime": round(uptime),
        "event_count": perf.event_count,
        "avg_processing_time": round(perf.avg_processing_ms, 2),
        "events_per_second": round(eps, 2),
    }


def check_modules(registered: set[str], required: list[str]) -> dict[str, Any]:
    modules = {name: name in registered for name in required}
    return {"healthy": all(modules.values()), "modules": modules}


def check_alerts(open_alerts: list[Alert]) -> dict[str, Any]:
    critical = [a for a in open_alerts if a.severity is Severity.CRITICAL]
    overdue = [a for a in open_alerts if a.status is AlertStatus.OVERDUE]
    return {
        "healthy": not critical and not overdue,
        "active_alerts": len(open_alerts),
        "critical_alerts": len(critical),
        "overdue_alerts": len(overdue),
    }


def check_metrics(metrics: dict[str, EventTypeMetrics], spike_factor: float) -> dict[str, Any]:
    anomalies = [
        f"{etype}: {m.last_hour} events this hour vs {m.avg_hourly}/h average"
        for etype, m in metrics.items()
        if is_spike(m, spike_factor)
    ]
    return {"healthy": not anomalies, "anomalies": anomalies, "total_event_types": len(metrics)}


def check_performance(snapshot: dict[str, Any], cfg: MonitorConfig) -> dict[str, Any]:
    issues: list[str] = []
    if snapshot["avg_processing_time"] > cfg.max_avg_processing_ms:
        issues.append(f"High processing time: {snapshot['avg_processing_time']}ms")
    if snapshot["events_per_second"] > cfg.max_events_per_sec:
        issues.append(f"High event rate: {snapshot['events_per_second']}/sec")
    return {"healthy": not issues, "issues": issues, "metrics": snapshot}


def run_health_check(
    *,
    now: float,
    registered: set[str],
    open_alerts: list[Alert],
    metrics: dict[str, EventTypeMetrics],
    perf: PerformanceCounters,
    cfg: MonitorConfig,
) -> dict[str, Any]:
    snapshot = performance_snapshot(perf, now)
    checks = {
        "modules": check_modules(registered, cfg.required_modules),
        "alerts": check_alerts(open_alerts),
        "metrics": check_metrics(metrics, cfg.spike_factor),
        "performance": check_performance(snapshot, cfg),
    }
    healthy = all(c["healthy"] for c in checks.values())
    status = HealthStatus.HEALTHY if healthy else HealthStatus.UNHEALTHY
    log.debug("Health check: %s", status.value)
    return {"timestamp": now, "status": status.value, "checks": checks, "performance": snapshot}
