"""
Abstract interfaces for the data source and the presentation layer.
"""

from coinpulse.interfaces.data_client import DataClient
from coinpulse.interfaces.views import ChartView, RowView, TableView

__all__ = ["ChartView", "DataClient", "RowView", "TableView"]
