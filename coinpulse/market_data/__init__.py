"""
Market data subsystem for the live table and chart.

Provides:
- Timer-driven poll sessions keyed by subject
- Position-based reconciliation of the coin table
"""

from coinpulse.market_data.polling import PollingStreamFactory, PollSession, PollSubject
from coinpulse.market_data.reconciliation import (
    EntityTable,
    ReconciliationPlan,
    Row,
    plan_reconciliation,
)

__all__ = [
    "EntityTable",
    "PollSession",
    "PollSubject",
    "PollingStreamFactory",
    "ReconciliationPlan",
    "Row",
    "plan_reconciliation",
]
