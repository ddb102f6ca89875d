"""perpguard: position risk engine for a perpetual-futures dashboard.

Turns position snapshots and mark-price ticks into risk metrics, folds them
into portfolio summaries, and coordinates user position actions as requests
for an external execution layer. No network I/O happens here.
"""

__version__ = "0.1.0"
