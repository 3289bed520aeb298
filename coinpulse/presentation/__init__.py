"""
In-memory presentation state served to front ends.
"""

from coinpulse.presentation.state import InMemoryChartView, InMemoryRowView, InMemoryTableView

__all__ = ["InMemoryChartView", "InMemoryRowView", "InMemoryTableView"]
