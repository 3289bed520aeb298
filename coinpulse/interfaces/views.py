"""
Presentation interfaces.

The dashboard core never touches markup directly. It drives these views, and
any front end (web, terminal, test recorder) implements them.
"""

from abc import ABC, abstractmethod

from coinpulse.client.types import EntitySnapshot, HistoricalSeries


class RowView(ABC):
    """Visual representation of one table row."""

    @abstractmethod
    def render(self, snapshot: EntitySnapshot) -> None:
        """Draw the row for the first time."""

    @abstractmethod
    def refresh(self, snapshot: EntitySnapshot, pulse: bool) -> None:
        """Redraw with new values; ``pulse`` requests the transient updating highlight."""

    @abstractmethod
    def set_loading(self, loading: bool) -> None:
        """Toggle the loading skeleton."""

    @abstractmethod
    def start_removal(self) -> None:
        """Start the fade-out shown before the row is detached."""

    @abstractmethod
    def cancel_removal(self) -> None:
        """Stop the fade-out; the row stays on screen."""

    @abstractmethod
    def detach(self) -> None:
        """Remove the row from the screen and release its resources."""


class TableView(ABC):
    """The table container holding rows plus error and empty states."""

    @abstractmethod
    def create_row(self, snapshot: EntitySnapshot) -> RowView:
        """Create and append a row view at the end of the table."""

    @abstractmethod
    def show_error(self, message: str) -> None:
        """Replace the table body with an error banner."""

    @abstractmethod
    def show_empty(self, message: str) -> None:
        """Replace the table body with an empty-state message."""

    @abstractmethod
    def reset(self) -> None:
        """Drop any error or empty banner."""


class ChartView(ABC):
    """Live price chart for the selected coin."""

    @abstractmethod
    def show_loading(self, label: str) -> None:
        """Show a loading overlay while data for ``label`` is fetched."""

    @abstractmethod
    def push_live_data(self, snapshot: EntitySnapshot, series: HistoricalSeries) -> None:
        """Replace the chart dataset with ``series``."""
