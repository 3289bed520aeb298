"""
In-memory view model implementing the presentation interfaces.

Holds what a front end would show (rows, banners, chart dataset) and counts
redraws so that clients and tests can observe exactly which mutations the
dashboard core performed.
"""

from typing import Any

from coinpulse.client.types import EntitySnapshot, HistoricalSeries
from coinpulse.interfaces.views import ChartView, RowView, TableView


def _snapshot_dict(snapshot: EntitySnapshot) -> dict[str, Any]:
    return snapshot.model_dump(mode="json")


class InMemoryRowView(RowView):
    """Row view recording its state and redraw counters."""

    def __init__(self, table: "InMemoryTableView") -> None:
        self._table = table
        self.snapshot: EntitySnapshot | None = None
        self.render_count = 0
        self.refresh_count = 0
        self.pulse_count = 0
        self.loading = False
        self.removing = False
        self.detached = False

    def render(self, snapshot: EntitySnapshot) -> None:
        self.snapshot = snapshot
        self.render_count += 1

    def refresh(self, snapshot: EntitySnapshot, pulse: bool) -> None:
        self.snapshot = snapshot
        self.refresh_count += 1
        if pulse:
            self.pulse_count += 1

    def set_loading(self, loading: bool) -> None:
        self.loading = loading

    def start_removal(self) -> None:
        self.removing = True

    def cancel_removal(self) -> None:
        self.removing = False

    def detach(self) -> None:
        if self.detached:
            return
        self.detached = True
        self._table._forget(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "coin": _snapshot_dict(self.snapshot) if self.snapshot else None,
            "loading": self.loading,
            "removing": self.removing,
            "refresh_count": self.refresh_count,
        }


class InMemoryTableView(TableView):
    """Table view keeping rows in display order."""

    def __init__(self) -> None:
        self.rows: list[InMemoryRowView] = []
        self.error: str | None = None
        self.empty_message: str | None = None
        self.created_count = 0

    def create_row(self, snapshot: EntitySnapshot) -> InMemoryRowView:
        row = InMemoryRowView(self)
        self.rows.append(row)
        self.created_count += 1
        return row

    def show_error(self, message: str) -> None:
        self.error = message
        self.empty_message = None

    def show_empty(self, message: str) -> None:
        self.empty_message = message
        self.error = None

    def reset(self) -> None:
        self.error = None
        self.empty_message = None

    def _forget(self, row: InMemoryRowView) -> None:
        self.rows = [r for r in self.rows if r is not row]

    @property
    def ids(self) -> list[str]:
        return [row.snapshot.id for row in self.rows if row.snapshot is not None]

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows": [row.to_dict() for row in self.rows],
            "error": self.error,
            "empty_message": self.empty_message,
        }


class InMemoryChartView(ChartView):
    """Chart view holding the latest dataset."""

    def __init__(self) -> None:
        self.loading_label: str | None = None
        self.snapshot: EntitySnapshot | None = None
        self.series: HistoricalSeries | None = None
        self.push_count = 0

    def show_loading(self, label: str) -> None:
        self.loading_label = label

    def push_live_data(self, snapshot: EntitySnapshot, series: HistoricalSeries) -> None:
        self.loading_label = None
        self.snapshot = snapshot
        self.series = series
        self.push_count += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "loading": self.loading_label,
            "coin": _snapshot_dict(self.snapshot) if self.snapshot else None,
            "points": [list(p) for p in self.series.points] if self.series else [],
        }
