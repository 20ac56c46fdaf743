"""Pipeline — compose state + monitor + dispatcher; JSONL replay and watch.

Replay mode drives a ManualClock: before each event the scheduler is
advanced to the event's timestamp, so periodic checks and escalation
steps fire at the instants they would have fired live.  Watch mode tails
a JSONL file against the wall clock with the scheduler on a background
thread.

Outputs (``out_dir``)
─────────────────────
  alerts.jsonl    one alert per line, with its escalation state
  signals.jsonl   dashboard channel signals (appended as they happen)
  health.json     final health-check report
"""

from __future__ import annotations

import json
import logging
import math
import os
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from src.alerting.channels import ChannelBackends
from src.alerting.dispatcher import AlertDispatcher
from src.monitor.config import MonitorConfig
from src.monitor.engine import EventMonitor
from src.monitor.state import LogSink, MonitorState
from src.shared.clock import Clock, ManualClock
from src.shared.logger import secure_log
from src.shared.scheduler import Scheduler

log = logging.getLogger(__name__)

ALERTS_FILE = "alerts.jsonl"
SIGNALS_FILE = "signals.jsonl"
HEALTH_FILE = "health.json"

# Epoch values above this are taken as milliseconds (JS ``Date.now()``).
_EPOCH_MS_CUTOFF = 1e11
# 9999-12-31T23:59:59Z, the last instant ``iso()`` can format.
_MAX_EPOCH_SEC = 253402300799.0
# One replayed event may move the virtual clock at most this far.
MAX_REPLAY_GAP_SEC = 7 * 86400.0


class SecurityPipeline:
    """Application root: one MonitorState shared by monitor and dispatcher."""

    def __init__(
        self,
        config: MonitorConfig | None = None,
        clock: Clock | None = None,
        *,
        backends: ChannelBackends | None = None,
        log_sink: LogSink = secure_log,
        perf_timer: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.state = MonitorState(config, clock, log_sink=log_sink, perf_timer=perf_timer)
        self.monitor = EventMonitor(self.state)
        self.dispatcher = AlertDispatcher(self.state, backends=backends)
        self.dispatcher.attach(self.monitor)

    @property
    def scheduler(self) -> Scheduler:
        return self.state.scheduler

    def start(self, poll_interval: float | None = None) -> None:
        """Register periodic work; with *poll_interval* also start the live driver."""
        self.monitor.start()
        self.dispatcher.start()
        if poll_interval is not None:
            self.scheduler.start(poll_interval)

    def stop(self) -> None:
        """Stop periodic work and cancel every pending timer."""
        self.monitor.stop()
        self.dispatcher.stop()
        self.scheduler.stop()


# ═══════════════════════════════════════════════════════════════════════════
#  Event loaders
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class RawEvent:
    """One input line before it reaches ``record_event``."""

    type: Any
    timestamp: float | None = None
    details: dict[str, Any] = field(default_factory=dict)


def parse_timestamp(value: Any) -> float | None:
    """ISO-8601 string or epoch number -> epoch seconds (None if unusable).

    NaN, infinities and instants outside ``[0, 9999-12-31]`` are unusable.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            ts = float(value)
        except OverflowError:
            return None
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            ts = float(text)
        except ValueError:
            try:
                dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                return None
            if dt.tzinfo is None:
                dt = dt.replace(tzinfo=timezone.utc)
            ts = dt.timestamp()
            return ts if 0.0 <= ts <= _MAX_EPOCH_SEC else None
    if not math.isfinite(ts):
        return None
    if ts > _EPOCH_MS_CUTOFF:
        ts /= 1000.0
    return ts if 0.0 <= ts <= _MAX_EPOCH_SEC else None


def _parse_event(obj: dict[str, Any]) -> RawEvent:
    details = obj.get("details")
    return RawEvent(
        type=obj.get("type", ""),
        timestamp=parse_timestamp(obj.get("timestamp")),
        details=details if isinstance(details, dict) else {},
    )


def _parse_lines(lines, source: str) -> list[RawEvent]:
    events: list[RawEvent] = []
    for line_no, line in enumerate(lines, 1):
        line = line.strip()
        if not line:
            continue
        try:
            obj = json.loads(line)
        except json.JSONDecodeError as exc:
            log.warning("Skipping %s line %d: %s", source, line_no, exc)
            continue
        if not isinstance(obj, dict):
            log.warning("Skipping %s line %d: not a JSON object", source, line_no)
            continue
        events.append(_parse_event(obj))
    return events


def load_events_jsonl(path: str | Path) -> list[RawEvent]:
    """Load events from a JSONL (one JSON object per line) file."""
    with open(path, encoding="utf-8") as fh:
        events = _parse_lines(fh, str(path))
    log.info("Loaded %d events from JSONL: %s", len(events), path)
    return events


# ═══════════════════════════════════════════════════════════════════════════
#  Writers
# ═══════════════════════════════════════════════════════════════════════════

def write_alerts_jsonl(pipeline: SecurityPipeline, path: Path) -> int:
    with pipeline.state.lock:
        alerts = list(pipeline.state.alerts)
        groups = {e.alert.alert_id: e.correlation_id for e in pipeline.state.history}
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        for alert in alerts:
            row = alert.to_dict()
            state = pipeline.dispatcher.get_escalation_state(alert.alert_id)
            row["escalation_state"] = state.value if state else None
            row["correlation_id"] = groups.get(alert.alert_id)
            fh.write(json.dumps(row, ensure_ascii=False, separators=(",", ":")) + "\n")
    log.info("Wrote %d alerts to %s", len(alerts), path)
    return len(alerts)


def write_health_json(report: dict[str, Any], path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(report, indent=2, ensure_ascii=False, default=str), encoding="utf-8")


def _write_outputs(pipeline: SecurityPipeline, out: Path) -> dict[str, Any]:
    n_alerts = write_alerts_jsonl(pipeline, out / ALERTS_FILE)
    report = pipeline.monitor.perform_health_check()
    write_health_json(report, out / HEALTH_FILE)
    return {"alerts": n_alerts, "health": report}


def _print_summary(stats: dict[str, Any], n_events: int, health_status: str) -> None:
    print(f"Events replayed : {n_events}")
    print(f"Alerts (total)  : {stats['total']}  acknowledged: {stats['acknowledged']}")
    if stats["by_severity"]:
        parts = ", ".join(f"{k}={v}" for k, v in sorted(stats["by_severity"].items()))
        print(f"  by severity   : {parts}")
    print(f"Correlations    : {stats['correlations']}")
    print(f"Health          : {health_status}")


# ═══════════════════════════════════════════════════════════════════════════
#  Replay
# ═══════════════════════════════════════════════════════════════════════════

def replay_target(timestamp: float | None, now: float) -> float | None:
    """Virtual time to advance to before recording an event, or None to stay put.

    Out-of-order events and events more than ``MAX_REPLAY_GAP_SEC`` ahead
    are recorded at the current replay time.
    """
    if timestamp is None or timestamp <= now:
        if timestamp is not None and timestamp < now:
            log.debug("Out-of-order event at %.3f recorded at current replay time", timestamp)
        return None
    if timestamp - now > MAX_REPLAY_GAP_SEC:
        log.warning(
            "Event timestamp %.3f is %.0fs past replay time; recorded at current replay time",
            timestamp, timestamp - now,
        )
        return None
    return timestamp


def replay(
    input_path: str | Path,
    out_dir: str | Path = "out",
    config: MonitorConfig | None = None,
    *,
    quiet: bool = False,
) -> dict[str, Any]:
    """Replay a JSONL event file on a virtual clock and write outputs.

    Returns a dict with keys: events, alerts, statistics, health.
    """
    events = load_events_jsonl(input_path)
    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    signals = out / SIGNALS_FILE
    if signals.exists():
        signals.unlink()

    first_ts = next((e.timestamp for e in events if e.timestamp is not None), None)
    clock = ManualClock() if first_ts is None else ManualClock(first_ts)
    pipeline = SecurityPipeline(config, clock, backends=ChannelBackends(signals_path=signals))
    pipeline.start()

    try:
        for ev in events:
            target = replay_target(ev.timestamp, clock.now())
            if target is not None:
                pipeline.scheduler.advance_to(target)
            pipeline.monitor.record_event(ev.type, ev.details)

        written = _write_outputs(pipeline, out)
        stats = pipeline.dispatcher.get_alert_statistics()
    finally:
        pipeline.stop()

    if not quiet:
        _print_summary(stats, len(events), written["health"]["status"])
    log.info("Replay complete. Outputs in %s/", out)
    return {
        "events": len(events),
        "alerts": written["alerts"],
        "statistics": stats,
        "health": written["health"],
    }


# ═══════════════════════════════════════════════════════════════════════════
#  Watch mode (tail JSONL)
# ═══════════════════════════════════════════════════════════════════════════

def read_new_events(input_path: str | Path, offset: int) -> tuple[list[RawEvent], int]:
    """Events appended to *input_path* past byte *offset*; returns ``(events, new_offset)``.

    A file that shrank below *offset* was truncated and is read from the top.
    """
    if not os.path.isfile(input_path):
        return [], offset
    current_size = os.path.getsize(input_path)
    if current_size < offset:
        log.info("Watch: %s truncated, restarting from the top", input_path)
        offset = 0
    if current_size <= offset:
        return [], offset
    with open(input_path, encoding="utf-8") as fh:
        fh.seek(offset)
        events = _parse_lines(fh, str(input_path))
    return events, current_size


def watch_poll(
    pipeline: SecurityPipeline,
    input_path: str | Path,
    out: Path,
    offset: int,
) -> tuple[int, int]:
    """One watch iteration: record new lines, refresh outputs if any.

    Returns ``(events_recorded, new_offset)``.
    """
    new_events, offset = read_new_events(input_path, offset)
    for ev in new_events:
        pipeline.monitor.record_event(ev.type, ev.details)
    if new_events:
        _write_outputs(pipeline, out)
    return len(new_events), offset


def watch(
    input_path: str | Path,
    out_dir: str | Path = "out",
    config: MonitorConfig | None = None,
    poll_interval_sec: float = 1.0,
    *,
    max_polls: int | None = None,
) -> int:
    """Tail a JSONL file and feed new lines into a live pipeline.

    Blocks until interrupted (Ctrl+C) or, when given, after *max_polls*
    iterations.  Lines already in the file at startup are skipped;
    timestamps in the input are ignored and events are recorded at
    wall-clock time.  Returns the number of events processed.
    """
    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    pipeline = SecurityPipeline(config, backends=ChannelBackends(signals_path=out / SIGNALS_FILE))
    pipeline.start(poll_interval=poll_interval_sec)

    file_offset = os.path.getsize(input_path) if os.path.isfile(input_path) else 0
    total = 0
    iteration = 0
    polls = 0

    print(f"Monitor watch mode -> {input_path}")
    print(f"  poll interval: {poll_interval_sec:.1f}s, outputs: {out}/")
    print("  Press Ctrl+C to stop.")

    try:
        while max_polls is None or polls < max_polls:
            n_new, file_offset = watch_poll(pipeline, input_path, out, file_offset)
            polls += 1
            if n_new:
                total += n_new
                iteration += 1
                log.info("Watch iteration %d: +%d new, %d total events", iteration, n_new, total)
            time.sleep(poll_interval_sec)
    except KeyboardInterrupt:
        print(f"\nWatch stopped. Total events processed: {total}")
    finally:
        _write_outputs(pipeline, out)
        pipeline.stop()
    return total
