"""HTML builders for the KPI cards."""

from __future__ import annotations

# ── canonical severity colours & display names ──────────────────────────────

SEVERITY_COLORS: dict[str, str] = {
    "critical": "#ef4444",
    "high": "#f59e0b",
    "medium": "#3b82f6",
    "low": "#22c55e",
}

SEVERITY_DISPLAY: dict[str, str] = {
    "critical": "Critical",
    "high": "High",
    "medium": "Medium",
    "low": "Low",
}

HEALTH_COLORS: dict[str, str] = {
    "healthy": "#22c55e",
    "unhealthy": "#f59e0b",
    "error": "#ef4444",
}


def severity_kpi_card(severity: str, total: int, open_count: int, overdue: int) -> str:
    """One KPI card per severity: total alerts, still open, overdue."""
    color = SEVERITY_COLORS.get(severity, "#888")
    title = SEVERITY_DISPLAY.get(severity, severity.capitalize())
    return (
        f'<div class="policy-card" style="border-top: 3px solid {color}">'
        f'  <div class="policy-card-header">{title}</div>'
        f'  <div class="policy-card-body">'
        f'    <div class="policy-metric-main">{total}</div>'
        f'    <div class="policy-metric-label">Alerts</div>'
        f'    <div class="policy-metric-row">'
        f'      <span class="policy-metric-item">Open: {open_count}</span>'
        f'      <span class="policy-metric-item">Overdue: {overdue}</span>'
        f"    </div>"
        f"  </div>"
        f"</div>"
    )


def health_card(report: dict | None) -> str:
    if not report:
        return '<div class="no-data-box"><strong>Health</strong><br>No health report yet.</div>'
    status = str(report.get("status", "error"))
    perf = report.get("performance") or {}
    failing = [name for name, c in (report.get("checks") or {}).items() if not c.get("healthy")]
    return (
        f'<div class="policy-card" style="border-top: 3px solid {HEALTH_COLORS.get(status, "#888")}">'
        f'  <div class="policy-card-header">Monitor Health</div>'
        f'  <div class="policy-card-body">'
        f'    <div class="policy-metric-main">{status}</div>'
        f'    <div class="policy-metric-row">'
        f'      <span class="policy-metric-item">Events: {perf.get("event_count", 0)}</span>'
        f'      <span class="policy-metric-item">Avg: {perf.get("avg_processing_time", 0)} ms</span>'
        f"    </div>"
        f'    <div class="policy-metric-row">'
        f'      <span class="policy-metric-item">Failing: {", ".join(failing) or "none"}</span>'
        f"    </div>"
        f"  </div>"
        f"</div>"
    )
