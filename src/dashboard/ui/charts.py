"""Plotly chart builders."""

from __future__ import annotations

import pandas as pd
import plotly.graph_objects as go

from src.dashboard.ui.cards import SEVERITY_COLORS

# ── chart config (hide toolbar by default) ──────────────────────────────────

CHART_CONFIG: dict = {"displayModeBar": False}

SEVERITY_ORDER: list[str] = ["critical", "high", "medium", "low"]

# ── shared layout ───────────────────────────────────────────────────────────

_FONT = dict(family="-apple-system, Segoe UI, Roboto, sans-serif", size=13, color="#c9d1d9")

_LAYOUT: dict = dict(
    template="plotly_dark",
    paper_bgcolor="rgba(0,0,0,0)",
    plot_bgcolor="rgba(0,0,0,0)",
    margin=dict(l=48, r=16, t=44, b=36),
    font=_FONT,
    title=dict(font=dict(size=14, color="#e6edf3"), x=0, xanchor="left", y=0.98, yanchor="top"),
    legend=dict(
        orientation="h", yanchor="bottom", y=1.02, xanchor="right", x=1, font=dict(size=11)
    ),
    bargap=0.35,
    height=340,
)

_GRID_COLOR = "rgba(128,128,128,0.10)"


def _base(**overrides: object) -> dict:
    merged = {**_LAYOUT}
    for k, v in overrides.items():
        if isinstance(v, dict) and isinstance(merged.get(k), dict):
            merged[k] = {**merged[k], **v}
        else:
            merged[k] = v
    return merged


# ── alerts by severity ──────────────────────────────────────────────────────


def severity_bar(df: pd.DataFrame) -> go.Figure:
    counts = df["severity"].value_counts() if not df.empty else pd.Series(dtype=int)
    fig = go.Figure()
    for sev in SEVERITY_ORDER:
        n = int(counts.get(sev, 0))
        fig.add_trace(
            go.Bar(
                x=[sev.capitalize()],
                y=[n],
                marker_color=SEVERITY_COLORS[sev],
                marker_line_width=0,
                showlegend=False,
                hovertemplate="%{x}: %{y}<extra></extra>",
                text=[str(n)],
                textposition="outside",
                textfont=dict(size=12, color="#e6edf3"),
            )
        )
    fig.update_layout(
        **_base(
            title=dict(text="Alerts by Severity"),
            yaxis=dict(title="", gridcolor=_GRID_COLOR, zeroline=False),
            xaxis=dict(title=""),
        )
    )
    return fig


# ── alerts by type ──────────────────────────────────────────────────────────


def type_bar(df: pd.DataFrame) -> go.Figure:
    counts = df["type"].value_counts().sort_values() if not df.empty else pd.Series(dtype=int)
    fig = go.Figure(
        go.Bar(
            x=counts.values,
            y=counts.index,
            orientation="h",
            marker_color="#8b5cf6",
            marker_line_width=0,
            hovertemplate="%{y}: %{x}<extra></extra>",
        )
    )
    fig.update_layout(
        **_base(
            title=dict(text="Alerts by Type"),
            xaxis=dict(title="", gridcolor=_GRID_COLOR, zeroline=False),
            yaxis=dict(title=""),
            showlegend=False,
        )
    )
    return fig


# ── dashboard signals per minute ────────────────────────────────────────────


def signals_per_minute(
    df: pd.DataFrame,
    *,
    tz: str = "UTC",
) -> go.Figure | None:
    """Stacked bars of dashboard signals per minute, split by severity.

    Returns *None* when there is nothing to plot, so the caller can show
    a placeholder instead.  Missing minutes inside the range are filled
    with zeros.
    """
    if df is None or df.empty or "signal_ts" not in df.columns:
        return None

    tmp = df[["signal_ts", "severity"]].dropna(subset=["signal_ts"]).copy()
    if tmp.empty:
        return None

    # Plotly renders tz-aware values in UTC; drop tz after converting.
    tmp["_local"] = tmp["signal_ts"].dt.tz_convert(tz).dt.tz_localize(None)
    tmp["minute"] = tmp["_local"].dt.floor("min")
    agg = tmp.groupby(["minute", "severity"]).size().unstack(fill_value=0)

    full_range = pd.date_range(start=agg.index.min(), end=agg.index.max(), freq="min")
    agg = agg.reindex(full_range, fill_value=0)

    fig = go.Figure()
    for sev in SEVERITY_ORDER:
        if sev not in agg.columns:
            continue
        fig.add_trace(
            go.Bar(
                x=agg.index,
                y=agg[sev],
                name=sev.capitalize(),
                marker_color=SEVERITY_COLORS[sev],
                marker_line_width=0,
                hovertemplate="%{x|%H:%M}<br>%{y} signals<extra></extra>",
            )
        )
    fig.update_layout(
        **_base(
            title=dict(text="Dashboard Signals per Minute"),
            barmode="stack",
            xaxis=dict(title="", gridcolor=_GRID_COLOR, tickformat="%H:%M"),
            yaxis=dict(title="", gridcolor=_GRID_COLOR, zeroline=False),
        )
    )
    return fig
