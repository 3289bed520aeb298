"""
Dashboard components bound to the event bus.
"""

from coinpulse.dashboard.chart import LiveChart
from coinpulse.dashboard.search import SearchBox

__all__ = ["LiveChart", "SearchBox"]
