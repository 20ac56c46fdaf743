"""Data loading and filtering for the dashboard.

Reads the monitor's outputs (``out/alerts.jsonl``, ``out/signals.jsonl``,
``out/health.json``) into pandas frames.  The frame builders are pure
functions so they can be tested without a running Streamlit session.
"""

from __future__ import annotations

import json
import logging
import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pandas as pd

log = logging.getLogger(__name__)

# ── paths (relative to repo root) ───────────────────────────────────────────

ROOT = Path(__file__).resolve().parent.parent.parent
OUT_DIR = Path(os.environ.get("MONITOR_OUT_DIR", ROOT / "out"))
ALERTS_PATH = OUT_DIR / "alerts.jsonl"
SIGNALS_PATH = OUT_DIR / "signals.jsonl"
HEALTH_PATH = OUT_DIR / "health.json"

# ── retry / stability settings ──────────────────────────────────────────────

_MAX_READ_RETRIES = 3
_READ_RETRY_DELAY_SEC = 0.15

SEVERITY_ORDER = {"critical": 0, "high": 1, "medium": 2, "low": 3}

ALERT_COLUMNS = [
    "id",
    "created_at",
    "type",
    "severity",
    "status",
    "count",
    "threshold",
    "response_deadline",
    "acknowledged_by",
    "escalation_state",
    "correlation_id",
]


# ── file info helpers ───────────────────────────────────────────────────────


def file_mtime(path: Path) -> float:
    try:
        return os.path.getmtime(path) if path.exists() else 0.0
    except OSError:
        return 0.0


def file_mtime_str(path: Path) -> str:
    ts = file_mtime(path)
    if ts == 0.0:
        return "N/A"
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def file_size(path: Path) -> int:
    try:
        return path.stat().st_size if path.exists() else 0
    except OSError:
        return 0


def file_row_count(path: Path) -> int:
    """Non-empty lines in a JSONL file, or 0."""
    if not path.exists() or file_size(path) == 0:
        return 0
    try:
        with open(path, encoding="utf-8") as fh:
            return sum(1 for line in fh if line.strip())
    except OSError:
        return 0


# ── internal JSONL reader with retry ────────────────────────────────────────


def parse_jsonl(lines) -> list[dict[str, Any]]:
    """Parse JSONL lines, skipping blanks and partial/corrupt lines."""
    records: list[dict[str, Any]] = []
    for line in lines:
        line = line.strip()
        if not line:
            continue
        try:
            obj = json.loads(line)
        except json.JSONDecodeError:
            # the writer may be mid-line
            continue
        if isinstance(obj, dict):
            records.append(obj)
    return records


def _read_jsonl_safe(path: Path) -> list[dict[str, Any]] | None:
    for attempt in range(1, _MAX_READ_RETRIES + 1):
        if not path.exists():
            return None
        if file_size(path) == 0:
            if attempt < _MAX_READ_RETRIES:
                time.sleep(_READ_RETRY_DELAY_SEC)
                continue
            return []
        try:
            with open(path, encoding="utf-8") as fh:
                return parse_jsonl(fh)
        except OSError as exc:
            log.debug("JSONL read attempt %d/%d for %s failed: %s",
                      attempt, _MAX_READ_RETRIES, path, exc)
            if attempt < _MAX_READ_RETRIES:
                time.sleep(_READ_RETRY_DELAY_SEC)
    return None


# ── frame builders ──────────────────────────────────────────────────────────


def alerts_to_frame(records: list[dict[str, Any]]) -> pd.DataFrame:
    """Alert dicts (as written to alerts.jsonl) -> one row per alert."""
    rows = [{c: r.get(c) for c in ALERT_COLUMNS} for r in records]
    df = pd.DataFrame(rows, columns=ALERT_COLUMNS)
    for col in ("created_at", "response_deadline"):
        df[col] = pd.to_datetime(df[col], utc=True, errors="coerce")
    return df


def signals_to_frame(records: list[dict[str, Any]]) -> pd.DataFrame:
    """Dashboard signals -> one row per ``alert`` signal.

    ``show`` signals carry no new alert and are skipped.  Summary signals
    for correlation groups keep their ``corr_`` id and ``correlated_count``.
    """
    rows = []
    for s in records:
        if s.get("type") != "alert" or not isinstance(s.get("alert"), dict):
            continue
        a = s["alert"]
        details = a.get("details") or {}
        rows.append({
            "signal_ts": s.get("timestamp"),
            "id": a.get("id"),
            "type": a.get("type"),
            "severity": a.get("severity"),
            "status": a.get("status"),
            "count": a.get("count"),
            "correlated_count": details.get("correlated_count"),
        })
    cols = ["signal_ts", "id", "type", "severity", "status", "count", "correlated_count"]
    df = pd.DataFrame(rows, columns=cols)
    df["signal_ts"] = pd.to_datetime(df["signal_ts"], utc=True, errors="coerce")
    df["is_summary"] = df["id"].fillna("").astype(str).str.startswith("corr_")
    return df


# ── loaders ─────────────────────────────────────────────────────────────────


def load_alerts() -> pd.DataFrame | None:
    """Load out/alerts.jsonl.  None when the file is missing."""
    records = _read_jsonl_safe(ALERTS_PATH)
    return None if records is None else alerts_to_frame(records)


def load_signals() -> pd.DataFrame | None:
    records = _read_jsonl_safe(SIGNALS_PATH)
    return None if records is None else signals_to_frame(records)


def load_health() -> dict[str, Any] | None:
    if not HEALTH_PATH.exists():
        return None
    try:
        return json.loads(HEALTH_PATH.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        log.debug("Health report unreadable: %s", exc)
        return None


# ── filtering ───────────────────────────────────────────────────────────────


def filter_alerts(
    df: pd.DataFrame,
    *,
    severities: list[str] | None = None,
    types: list[str] | None = None,
    statuses: list[str] | None = None,
    horizon_hours: float | None = None,
) -> pd.DataFrame:
    """Apply sidebar filters; the horizon is relative to the newest alert."""
    mask = pd.Series(True, index=df.index)

    if severities:
        mask &= df["severity"].isin(severities)
    if types:
        mask &= df["type"].isin(types)
    if statuses:
        mask &= df["status"].isin(statuses)

    if horizon_hours and horizon_hours > 0 and "created_at" in df.columns:
        latest = df["created_at"].max()
        if pd.notna(latest):
            cutoff = latest - pd.Timedelta(hours=horizon_hours)
            mask &= df["created_at"] >= cutoff

    return df.loc[mask].copy()
