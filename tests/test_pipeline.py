"""Tests for src.monitor.pipeline and the CLI — JSONL replay end to end."""

from __future__ import annotations

import json

import pytest

from src.contracts.enums import AlertStatus
from src.monitor.cli import build_parser, main
from src.monitor.pipeline import (
    MAX_REPLAY_GAP_SEC,
    SIGNALS_FILE,
    SecurityPipeline,
    load_events_jsonl,
    parse_timestamp,
    read_new_events,
    replay,
    replay_target,
    watch,
    watch_poll,
)
from src.shared.clock import ManualClock
from tests.conftest import MINUTE, T0, RecordingSink


def _write_jsonl(path, rows) -> None:
    with open(path, "w", encoding="utf-8") as fh:
        for row in rows:
            fh.write((row if isinstance(row, str) else json.dumps(row)) + "\n")


@pytest.fixture
def events_file(tmp_path):
    path = tmp_path / "events.jsonl"
    _write_jsonl(path, [
        {"type": "failedAuthAttempts", "timestamp": "2026-03-01T10:00:00Z", "details": {"user": "bob"}},
        {"type": "failedAuthAttempts", "timestamp": "2026-03-01T10:00:30Z", "details": {"user": "bob"}},
        "not json at all",
        {"type": "failedAuthAttempts", "timestamp": "2026-03-01T10:01:00Z", "details": {"user": "bob"}},
        {"type": "xssAttempts", "timestamp": 1772359290000, "details": {"field": "q"}},
    ])
    return path


# ═══════════════════════════════════════════════════════════════════════════
#  Loaders
# ═══════════════════════════════════════════════════════════════════════════


class TestParseTimestamp:
    def test_iso_zulu(self):
        assert parse_timestamp("2026-01-01T00:00:00Z") == T0

    def test_naive_iso_is_utc(self):
        assert parse_timestamp("2026-01-01T00:01:00") == T0 + 60

    def test_epoch_seconds_and_ms(self):
        assert parse_timestamp(T0) == T0
        assert parse_timestamp(int(T0 * 1000)) == T0
        assert parse_timestamp(str(T0)) == T0

    @pytest.mark.parametrize("raw", [None, "", "yesterday", True])
    def test_unusable(self, raw):
        assert parse_timestamp(raw) is None

    @pytest.mark.parametrize(
        "raw",
        [float("inf"), float("-inf"), float("nan"), "Infinity", "NaN", "1e400", 10**400],
    )
    def test_non_finite_unusable(self, raw):
        assert parse_timestamp(raw) is None

    @pytest.mark.parametrize("raw", [-5, "0001-01-01T00:00:00Z", 1e300])
    def test_out_of_range_unusable(self, raw):
        assert parse_timestamp(raw) is None


class TestReplayTarget:
    def test_forward_event_advances(self):
        assert replay_target(T0 + 30, T0) == T0 + 30

    def test_missing_or_past_timestamp_stays(self):
        assert replay_target(None, T0) is None
        assert replay_target(T0 - 30, T0) is None
        assert replay_target(T0, T0) is None

    def test_gap_limit(self, caplog):
        assert replay_target(T0 + MAX_REPLAY_GAP_SEC, T0) == T0 + MAX_REPLAY_GAP_SEC
        assert replay_target(T0 + MAX_REPLAY_GAP_SEC + 1, T0) is None
        assert "past replay time" in caplog.text


class TestLoadEvents:
    def test_bad_lines_skipped(self, events_file):
        events = load_events_jsonl(events_file)
        assert len(events) == 4
        assert events[0].type == "failedAuthAttempts"
        assert events[0].details == {"user": "bob"}

    def test_non_dict_details_dropped(self, tmp_path):
        path = tmp_path / "e.jsonl"
        _write_jsonl(path, [{"type": "x", "details": [1, 2]}, [1, 2]])
        events = load_events_jsonl(path)
        assert len(events) == 1
        assert events[0].details == {}
        assert events[0].timestamp is None


# ═══════════════════════════════════════════════════════════════════════════
#  SecurityPipeline composition
# ═══════════════════════════════════════════════════════════════════════════


class TestSecurityPipeline:
    def test_monitor_and_dispatcher_share_state(self):
        p = SecurityPipeline(clock=ManualClock(T0), log_sink=RecordingSink(), perf_timer=lambda: 0.0)
        assert p.monitor.state is p.dispatcher.state
        assert p.monitor.perform_health_check()["status"] == "healthy"

    def test_stop_cancels_all_timers(self):
        p = SecurityPipeline(clock=ManualClock(T0), log_sink=RecordingSink(), perf_timer=lambda: 0.0)
        p.start()
        p.monitor.record_event("xssAttempts")
        assert p.scheduler.pending()
        p.stop()
        assert p.scheduler.pending() == []

    def test_escalation_runs_on_virtual_time(self):
        sink = RecordingSink()
        p = SecurityPipeline(clock=ManualClock(T0), log_sink=sink, perf_timer=lambda: 0.0)
        p.start()
        p.monitor.record_event("xssAttempts")
        p.scheduler.advance(16 * MINUTE)
        assert "Alert escalated" in sink.messages("warn")
        assert p.state.alerts[0].status is AlertStatus.OVERDUE
        p.stop()


# ═══════════════════════════════════════════════════════════════════════════
#  Replay
# ═══════════════════════════════════════════════════════════════════════════


class TestReplay:
    def test_outputs_written(self, events_file, tmp_path):
        out = tmp_path / "out"
        result = replay(events_file, out, quiet=True)
        assert result["events"] == 4
        assert result["alerts"] == 2

        alerts = [json.loads(line) for line in (out / "alerts.jsonl").read_text().splitlines()]
        assert [(a["type"], a["severity"]) for a in alerts] == [
            ("failedAuthAttempts", "high"),
            ("xssAttempts", "critical"),
        ]
        assert alerts[0]["created_at"] == "2026-03-01T10:01:00.000Z"
        assert alerts[0]["escalation_state"] == "dispatched"
        assert alerts[0]["correlation_id"].startswith("failedAuthAttempts_high_")

        signals = [json.loads(line) for line in (out / "signals.jsonl").read_text().splitlines()]
        assert [s["alert"]["id"] for s in signals if s["type"] == "alert"] == [
            alerts[0]["id"], alerts[1]["id"],
        ]

        health = json.loads((out / "health.json").read_text())
        assert health["status"] == "unhealthy"
        assert health["checks"]["alerts"]["critical_alerts"] == 1

    def test_replay_truncates_previous_signals(self, events_file, tmp_path):
        out = tmp_path / "out"
        replay(events_file, out, quiet=True)
        replay(events_file, out, quiet=True)
        lines = (out / "signals.jsonl").read_text().splitlines()
        assert len(lines) == 2

    def test_statistics_returned(self, events_file, tmp_path):
        stats = replay(events_file, tmp_path / "out", quiet=True)["statistics"]
        assert stats["total"] == 2
        assert stats["by_severity"] == {"high": 1, "critical": 1}

    def test_infinite_timestamp_recorded_at_replay_time(self, tmp_path):
        path = tmp_path / "inf.jsonl"
        _write_jsonl(path, [
            {"type": "customProbe", "timestamp": "2026-03-01T10:00:00Z"},
            '{"type": "xssAttempts", "timestamp": 1e999}',
            '{"type": "xssAttempts", "timestamp": Infinity}',
        ])
        result = replay(path, tmp_path / "out", quiet=True)
        assert result["events"] == 3
        alerts = [json.loads(line) for line in (tmp_path / "out" / "alerts.jsonl").read_text().splitlines()]
        assert {a["created_at"] for a in alerts} == {"2026-03-01T10:00:00.000Z"}

    def test_far_future_timestamp_does_not_jump_clock(self, tmp_path):
        path = tmp_path / "future.jsonl"
        _write_jsonl(path, [
            {"type": "customProbe", "timestamp": "2026-03-01T10:00:00Z"},
            {"type": "xssAttempts", "timestamp": 9e10},
            {"type": "codeInjectionAttempts", "timestamp": "2026-03-01T10:00:30Z"},
        ])
        replay(path, tmp_path / "out", quiet=True)
        alerts = [json.loads(line) for line in (tmp_path / "out" / "alerts.jsonl").read_text().splitlines()]
        assert [(a["type"], a["created_at"]) for a in alerts] == [
            ("xssAttempts", "2026-03-01T10:00:00.000Z"),
            ("codeInjectionAttempts", "2026-03-01T10:00:30.000Z"),
        ]

    def test_summary_printed(self, events_file, tmp_path, capsys):
        replay(events_file, tmp_path / "out")
        out = capsys.readouterr().out
        assert "Events replayed : 4" in out
        assert "critical=1" in out


# ═══════════════════════════════════════════════════════════════════════════
#  Watch mode
# ═══════════════════════════════════════════════════════════════════════════


def _append(path, rows) -> None:
    with open(path, "a", encoding="utf-8") as fh:
        for row in rows:
            fh.write(json.dumps(row) + "\n")


class TestReadNewEvents:
    def test_missing_file(self, tmp_path):
        assert read_new_events(tmp_path / "absent.jsonl", 0) == ([], 0)

    def test_only_appended_lines_read(self, tmp_path):
        path = tmp_path / "live.jsonl"
        _append(path, [{"type": "a"}])
        events, offset = read_new_events(path, 0)
        assert [e.type for e in events] == ["a"]

        assert read_new_events(path, offset) == ([], offset)

        _append(path, [{"type": "b"}, {"type": "c"}])
        events, offset2 = read_new_events(path, offset)
        assert [e.type for e in events] == ["b", "c"]
        assert offset2 == path.stat().st_size

    def test_truncation_restarts_from_top(self, tmp_path):
        path = tmp_path / "live.jsonl"
        _append(path, [{"type": "a"}, {"type": "b"}, {"type": "c"}])
        _, offset = read_new_events(path, 0)
        path.write_text(json.dumps({"type": "fresh"}) + "\n", encoding="utf-8")
        events, new_offset = read_new_events(path, offset)
        assert [e.type for e in events] == ["fresh"]
        assert new_offset == path.stat().st_size


class TestWatchPoll:
    def test_new_lines_recorded_and_outputs_written(self, tmp_path):
        path = tmp_path / "live.jsonl"
        out = tmp_path / "out"
        _append(path, [{"type": "xssAttempts"}])
        p = SecurityPipeline(clock=ManualClock(T0), log_sink=RecordingSink(), perf_timer=lambda: 0.0)

        n, offset = watch_poll(p, path, out, 0)
        assert n == 1
        assert len(p.state.alerts) == 1
        assert (out / "alerts.jsonl").read_text().count("\n") == 1

        n, offset = watch_poll(p, path, out, offset)
        assert n == 0

        _append(path, [{"type": "customProbe"}, {"type": "customProbe"}])
        n, _ = watch_poll(p, path, out, offset)
        assert n == 2
        assert len(p.state.buffers["customProbe"]) == 2
        p.stop()

    def test_watch_skips_existing_lines_and_stops(self, tmp_path):
        path = tmp_path / "live.jsonl"
        _append(path, [{"type": "xssAttempts"}])
        out = tmp_path / "out"
        assert watch(path, out, poll_interval_sec=0.01, max_polls=2) == 0
        assert (out / "health.json").exists()
        assert (out / "alerts.jsonl").read_text() == ""
        assert not (out / SIGNALS_FILE).exists()


class TestCli:
    def test_defaults(self):
        args = build_parser().parse_args([])
        assert args.input == "data/events.jsonl"
        assert args.out_dir == "out"
        assert args.watch is False
        assert args.poll_interval_ms == 1000

    def test_main_replays(self, events_file, tmp_path):
        out = tmp_path / "cli_out"
        main(["--input", str(events_file), "--out-dir", str(out), "--log-level", "WARNING"])
        assert (out / "alerts.jsonl").exists()
        assert (out / "health.json").exists()

    def test_missing_config_fails_fast(self, events_file, tmp_path):
        with pytest.raises(FileNotFoundError):
            main(["--input", str(events_file), "--config", str(tmp_path / "none.yaml")])
