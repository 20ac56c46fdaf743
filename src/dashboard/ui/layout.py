"""Page layout — sidebar controls and the header.

The sidebar writes its selections into ``st.session_state`` (``f_*``
keys) so the live fragment in ``app.py`` can read them on every rerun.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pandas as pd
import streamlit as st

from src.dashboard.data_access import SEVERITY_ORDER


def render_header() -> None:
    st.markdown(
        '<h1 class="page-title">Security Monitor Dashboard</h1>'
        '<p class="page-subtitle">'
        "Alerts, escalations and correlation activity from the event monitor."
        "</p>",
        unsafe_allow_html=True,
    )


def _options(df: pd.DataFrame | None, column: str) -> list[str]:
    if df is None or column not in df.columns:
        return []
    return sorted(df[column].dropna().astype(str).unique())


def render_sidebar(alerts_df: pd.DataFrame | None) -> None:
    """Draw sidebar controls; selections land in session state."""
    with st.sidebar:
        st.markdown('<p class="sidebar-brand">Security Monitor</p>', unsafe_allow_html=True)
        st.caption("Event monitoring & alerting")
        st.divider()

        st.markdown("##### Filter Alerts")
        st.caption("Empty selection = no filter.")

        sev_options = sorted(_options(alerts_df, "severity"), key=lambda s: SEVERITY_ORDER.get(s, 9))
        st.multiselect("Severity", options=sev_options, key="f_severities")

        type_options = _options(alerts_df, "type")
        st.multiselect("Alert type", options=type_options, key="f_types")

        st.multiselect(
            "Status",
            options=["active", "overdue", "acknowledged"],
            key="f_statuses",
        )

        st.number_input(
            "Horizon (hours)",
            min_value=0.0,
            max_value=24.0 * 7,
            step=1.0,
            key="f_horizon",
            help="Only alerts within N hours of the newest one. 0 = show all.",
        )

        st.divider()

        st.markdown("##### Auto-refresh")
        st.toggle("Enable auto-refresh", key="auto_refresh")
        st.slider(
            "Refresh interval (sec)",
            min_value=2,
            max_value=60,
            step=1,
            key="refresh_interval",
            disabled=not st.session_state.get("auto_refresh", False),
        )

        now_str = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
        st.markdown(
            f'<p class="refresh-timestamp">Last refresh: {now_str}</p>',
            unsafe_allow_html=True,
        )
