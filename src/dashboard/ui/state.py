"""Session-state defaults."""

from __future__ import annotations

import os

import streamlit as st

# Live mode is switched on by the environment (e.g. next to a --watch run).
_LIVE_MODE = os.environ.get("MONITOR_LIVE_MODE", "") == "1"

_DEFAULTS: dict[str, object] = {
    "f_severities": [],
    "f_types": [],
    "f_statuses": [],
    "f_horizon": 0.0,
    "auto_refresh": _LIVE_MODE,
    "refresh_interval": 5,
    "display_tz": "UTC",
}


def init_state() -> None:
    """Fill st.session_state with defaults for missing keys."""
    for key, value in _DEFAULTS.items():
        if key not in st.session_state:
            st.session_state[key] = value
