"""Alert dispatching — channels, escalation, correlation, patterns.

Modules
───────
  channels     — console / push / dashboard / sound notification sinks
  escalation   — per-alert escalation state machine
  correlation  — fold same-(type, severity) bursts into one group
  patterns     — slow-burn pattern detection over recent events
  dispatcher   — AlertDispatcher: routes monitor notifications to channels
"""
