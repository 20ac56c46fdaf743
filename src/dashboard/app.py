"""Streamlit dashboard for the security event monitor.

Run:  streamlit run src/dashboard/app.py
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import streamlit as st

# ── page config (MUST be the first Streamlit call) ───────────────────────────

st.set_page_config(
    page_title="Security Monitor Dashboard",
    layout="wide",
    initial_sidebar_state="expanded",
)

# ── inject theme CSS ────────────────────────────────────────────────────────

_CSS_PATH = Path(__file__).resolve().parent / "styles" / "theme.css"
if _CSS_PATH.exists():
    st.markdown(f"<style>{_CSS_PATH.read_text()}</style>", unsafe_allow_html=True)

# ── local imports (after page config) ───────────────────────────────────────

from src.dashboard.data_access import (  # noqa: E402
    ALERTS_PATH,
    SIGNALS_PATH,
    file_mtime_str,
    file_row_count,
    file_size,
    filter_alerts,
    load_alerts,
    load_health,
    load_signals,
)
from src.dashboard.ui.cards import health_card, severity_kpi_card  # noqa: E402
from src.dashboard.ui.charts import (  # noqa: E402
    CHART_CONFIG,
    SEVERITY_ORDER,
    severity_bar,
    signals_per_minute,
    type_bar,
)
from src.dashboard.ui.layout import render_header, render_sidebar  # noqa: E402
from src.dashboard.ui.state import init_state  # noqa: E402
from src.dashboard.ui.tables import render_alert_table  # noqa: E402

# ── initialise session state ────────────────────────────────────────────────

init_state()

# ── sidebar / header ────────────────────────────────────────────────────────

render_sidebar(load_alerts())
render_header()


# ═════════════════════════════════════════════════════════════════════════════
#   LIVE DATA SECTION -- re-executed every N seconds as a fragment when
#   auto-refresh is on, without a full page rerun.
# ═════════════════════════════════════════════════════════════════════════════

_auto = st.session_state.get("auto_refresh", False)
_interval = st.session_state.get("refresh_interval", 5)


@st.fragment(run_every=timedelta(seconds=_interval) if _auto else None)
def _live_data_section() -> None:
    st.session_state["refresh_tick"] = st.session_state.get("refresh_tick", 0) + 1

    df_alerts_raw = load_alerts()
    df_signals = load_signals()
    report = load_health()

    if df_alerts_raw is None:
        st.markdown(
            '<div class="no-data-box">'
            "<strong>No alerts yet. Run the monitor first.</strong><br>"
            "The output file <code>out/alerts.jsonl</code> was not found.<br><br>"
            "Replay an event file:<br>"
            "<code>python -m src.monitor.cli --input data/events.jsonl</code>"
            "</div>",
            unsafe_allow_html=True,
        )
        return

    display_tz = st.session_state.get("display_tz", "UTC")
    df_alerts = filter_alerts(
        df_alerts_raw,
        severities=st.session_state.get("f_severities") or None,
        types=st.session_state.get("f_types") or None,
        statuses=st.session_state.get("f_statuses") or None,
        horizon_hours=st.session_state.get("f_horizon", 0.0),
    )

    # ── KPI CARDS ───────────────────────────────────────────────────
    cols = st.columns(len(SEVERITY_ORDER) + 1)
    for col, sev in zip(cols, SEVERITY_ORDER):
        subset = df_alerts[df_alerts["severity"] == sev]
        with col:
            st.markdown(
                severity_kpi_card(
                    sev,
                    total=len(subset),
                    open_count=int(subset["status"].isin(["active", "overdue"]).sum()),
                    overdue=int((subset["status"] == "overdue").sum()),
                ),
                unsafe_allow_html=True,
            )
    with cols[-1]:
        st.markdown(health_card(report), unsafe_allow_html=True)

    # ── CHARTS ──────────────────────────────────────────────────────
    st.markdown('<div class="section-gap"></div>', unsafe_allow_html=True)

    c1, c2 = st.columns(2)
    with c1:
        st.plotly_chart(severity_bar(df_alerts), width="stretch", config=CHART_CONFIG, key="chart_sev")
    with c2:
        st.plotly_chart(type_bar(df_alerts), width="stretch", config=CHART_CONFIG, key="chart_type")

    st.markdown('<div class="section-gap"></div>', unsafe_allow_html=True)

    fig = signals_per_minute(df_signals, tz=display_tz) if df_signals is not None else None
    if fig is not None:
        st.plotly_chart(fig, width="stretch", config=CHART_CONFIG, key="chart_signals")
        n_summary = int(df_signals["is_summary"].sum())
        st.caption(
            f"Signals: {len(df_signals)} | correlation summaries: {n_summary} | Time axis: {display_tz}"
        )
    else:
        st.markdown(
            '<div class="no-data-box">'
            "<strong>Dashboard Signals</strong><br>Not enough data yet."
            "</div>",
            unsafe_allow_html=True,
        )

    # ── ALERT TABLE ─────────────────────────────────────────────────
    st.markdown('<div class="section-gap"></div>', unsafe_allow_html=True)
    st.markdown('<p class="section-label">Alert Table</p>', unsafe_allow_html=True)
    render_alert_table(df_alerts)

    # ── DIAGNOSTICS ─────────────────────────────────────────────────
    with st.expander("Diagnostics (live debug info)", expanded=False):
        _now = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
        st.markdown(
            f"""
| Metric | Value |
|---|---|
| **Refresh tick** | {st.session_state.get("refresh_tick", "?")} |
| **Last refresh (UI)** | {_now} |
| **alerts.jsonl mtime** | {file_mtime_str(ALERTS_PATH)} |
| **alerts.jsonl size** | {file_size(ALERTS_PATH)} bytes |
| **alerts.jsonl rows** | {file_row_count(ALERTS_PATH)} |
| **signals.jsonl mtime** | {file_mtime_str(SIGNALS_PATH)} |
| **signals.jsonl rows** | {file_row_count(SIGNALS_PATH)} |
""",
        )


_live_data_section()
