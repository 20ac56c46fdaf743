"""Security event monitor — in-process SIEM-like core.

Modules
───────
  config    — thresholds, SLAs, intervals, escalation policy (YAML + defaults)
  state     — MonitorState shared by the monitor and the dispatcher
  metrics   — sliding-window per-type statistics and trend
  health    — self health / performance checks
  engine    — EventMonitor: record, evaluate rules, alerts, acknowledgement
  pipeline  — compose monitor + dispatcher; JSONL replay / watch
  cli       — argparse entry-point
"""
