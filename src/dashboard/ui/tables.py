"""Alert table rendering."""

from __future__ import annotations

import pandas as pd
import streamlit as st
from streamlit import column_config as colcfg

from src.dashboard.data_access import SEVERITY_ORDER

# columns to display (in order)
_DISPLAY_COLS = [
    "created_at",
    "id",
    "type",
    "severity",
    "status",
    "count",
    "threshold",
    "escalation_state",
    "acknowledged_by",
    "response_deadline",
]

_COL_LABELS = {
    "created_at": "Time",
    "id": "Alert",
    "type": "Type",
    "severity": "Severity",
    "status": "Status",
    "count": "Count",
    "threshold": "Threshold",
    "escalation_state": "Escalation",
    "acknowledged_by": "Acknowledged by",
    "response_deadline": "Respond by",
}

_COL_CONFIG = {
    "Time": colcfg.DatetimeColumn("Time", format="MMM DD, YYYY  HH:mm:ss"),
    "Respond by": colcfg.DatetimeColumn("Respond by", format="MMM DD  HH:mm"),
    "Count": colcfg.NumberColumn("Count", format="%d"),
}


def render_alert_table(df: pd.DataFrame) -> None:
    """Render an interactive alert table, critical first then newest first."""
    if df.empty:
        st.info("No alerts to display.")
        return

    cols = [c for c in _DISPLAY_COLS if c in df.columns]
    view = df[cols].copy()

    if "severity" in view.columns:
        view["_sev_ord"] = view["severity"].map(SEVERITY_ORDER).fillna(99)
        view = view.sort_values(["_sev_ord", "created_at"], ascending=[True, False])
        view = view.drop(columns=["_sev_ord"])

    view = view.rename(columns=_COL_LABELS)

    st.caption(f"Total alerts: {len(view)}")

    st.dataframe(
        view,
        hide_index=True,
        use_container_width=True,
        height=min(len(view) * 36 + 42, 600),
        column_config=_COL_CONFIG,
        key="tbl_alerts",
    )
