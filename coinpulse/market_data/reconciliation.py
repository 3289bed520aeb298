"""
List reconciliation for the market table.

Turns a new snapshot list into the smallest set of row mutations against the
rows currently on screen. Rows are reused by position, not by id: the row in
slot ``i`` takes the data of ``new_list[i]``. Ranking drift therefore shows up
as content changes in the affected slots rather than as row moves.
"""

import asyncio
from collections import OrderedDict
from collections.abc import Sequence
from dataclasses import dataclass, field

from coinpulse.client.types import EntitySnapshot
from coinpulse.interfaces.views import RowView, TableView
from coinpulse.logging import get_logger
from coinpulse.runtime.event_bus import (
    EventBus,
    ListRendered,
    ListUpdated,
    RemovalCompleted,
    RemovalRequested,
    Subscription,
    Topic,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReconciliationPlan:
    """
    Row mutations needed to go from ``previous_order`` to ``new_list``.

    ``reused`` holds ``(index, previous_id, new_id)`` for every slot kept.
    """

    reused: tuple[tuple[int, str, str], ...] = ()
    destroyed: tuple[str, ...] = ()
    created: tuple[str, ...] = ()

    @property
    def is_noop_shape(self) -> bool:
        """True when the row count does not change."""
        return not self.destroyed and not self.created


def plan_reconciliation(
    previous_order: Sequence[str],
    new_list: Sequence[EntitySnapshot],
) -> ReconciliationPlan:
    """
    Compute the position-based plan.

    With ``k = min(len(previous_order), len(new_list))``: slots ``0..k-1`` are
    reused, ``previous_order[k:]`` is destroyed and ``new_list[k:]`` is created
    and appended in order.
    """
    k = min(len(previous_order), len(new_list))
    return ReconciliationPlan(
        reused=tuple((i, previous_order[i], new_list[i].id) for i in range(k)),
        destroyed=tuple(previous_order[k:]),
        created=tuple(entity.id for entity in new_list[k:]),
    )


class Row:
    """Controller for one table row: owns its snapshot and its view."""

    def __init__(self, snapshot: EntitySnapshot, view: RowView) -> None:
        self._snapshot = snapshot
        self._view = view
        self._loading = False
        self.removing = False
        self._view.render(snapshot)

    @property
    def snapshot(self) -> EntitySnapshot:
        return self._snapshot

    @property
    def view(self) -> RowView:
        return self._view

    def update(self, snapshot: EntitySnapshot, animate: bool = False) -> bool:
        """
        Apply a new snapshot if any visible value changed.

        Returns:
            True if the view was refreshed
        """
        # A slot handed to another coin must redraw its name and icon too
        if self._snapshot.id == snapshot.id and not self._snapshot.differs_from(snapshot):
            self._snapshot = snapshot
            return False
        self._snapshot = snapshot
        self._view.refresh(snapshot, pulse=animate)
        return True

    def set_loading(self, loading: bool) -> None:
        if self._loading == loading:
            return
        self._loading = loading
        self._view.set_loading(loading)

    def start_removal(self) -> None:
        if self.removing:
            return
        self.removing = True
        self._view.start_removal()

    def cancel_removal(self) -> None:
        if not self.removing:
            return
        self.removing = False
        self._view.cancel_removal()

    def destroy(self) -> None:
        self._view.detach()


@dataclass
class UpdateResult:
    """Outcome of one ``EntityTable.update`` call."""

    plan: ReconciliationPlan
    refreshed: list[str] = field(default_factory=list)


class EntityTable:
    """
    Owns the row registry and applies full renders and incremental updates.

    Registry invariant: its keys are exactly the ids last rendered, in the
    order of the last applied list.
    """

    def __init__(
        self,
        view: TableView,
        bus: EventBus,
        removal_delay_s: float = 0.3,
    ):
        """
        Initialize table.

        Args:
            view: Table presentation
            bus: Event bus for list lifecycle events
            removal_delay_s: Fade-out time before a removed row is detached
        """
        self._view = view
        self._bus = bus
        self._removal_delay_s = removal_delay_s
        self._rows: OrderedDict[str, Row] = OrderedDict()
        self._loading = False
        self._restore_data: list[EntitySnapshot] = []
        self._pending_removals: dict[str, asyncio.TimerHandle] = {}
        self._subscriptions: list[Subscription] = [
            bus.subscribe(Topic.REMOVAL_REQUESTED, self._on_removal_requested),
        ]

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def count(self) -> int:
        return len(self._rows)

    @property
    def ids(self) -> list[str]:
        return list(self._rows.keys())

    def get_row(self, entity_id: str) -> Row | None:
        return self._rows.get(entity_id)

    def all_data(self) -> list[EntitySnapshot]:
        return [row.snapshot for row in self._rows.values()]

    @property
    def can_restore(self) -> bool:
        """True while the empty state hides rows that ``restore`` can bring back."""
        return bool(self._restore_data)

    @property
    def restorable(self) -> list[EntitySnapshot]:
        return list(self._restore_data)

    # =========================================================================
    # Render / update
    # =========================================================================

    def render(self, entities: Sequence[EntitySnapshot]) -> None:
        """Discard every row and build the list from scratch."""
        self.clear()
        self._restore_data = []
        self._view.reset()
        for entity in entities:
            self._rows[entity.id] = Row(entity, self._view.create_row(entity))
        logger.debug("Rendered %d rows", len(entities))
        self._bus.publish(Topic.LIST_RENDERED, ListRendered(count=len(entities)))

    def update(self, entities: Sequence[EntitySnapshot], animate: bool = False) -> UpdateResult:
        """
        Reconcile the rows on screen with ``entities``.

        Args:
            entities: New ordered list
            animate: Pulse rows whose values changed

        Returns:
            The applied plan and the ids whose rows were refreshed
        """
        rows_in_order = list(self._rows.values())
        plan = plan_reconciliation(list(self._rows.keys()), entities)
        result = UpdateResult(plan=plan)
        new_rows: OrderedDict[str, Row] = OrderedDict()
        self._restore_data = []

        for index, previous_id, new_id in plan.reused:
            row = rows_in_order[index]
            if previous_id != new_id:
                row.cancel_removal()
            if row.update(entities[index], animate):
                result.refreshed.append(new_id)
            new_rows[new_id] = row

        for row in rows_in_order[len(plan.reused):]:
            row.destroy()

        for entity in entities[len(plan.reused):]:
            new_rows[entity.id] = Row(entity, self._view.create_row(entity))

        self._rows = new_rows
        self._carry_removals()
        if plan.reused or plan.created:
            self._view.reset()
        self._bus.publish(Topic.LIST_UPDATED, ListUpdated(count=len(entities)))
        return result

    # =========================================================================
    # Removal
    # =========================================================================

    def _on_removal_requested(self, payload: RemovalRequested) -> None:
        self.remove(payload.id)

    def remove(self, entity_id: str) -> bool:
        """
        Fade out and remove one row, then publish ``REMOVAL_COMPLETED``.

        Returns:
            False if the id is not on screen or is already being removed
        """
        row = self._rows.get(entity_id)
        if row is None or row.removing:
            return False
        row.start_removal()
        loop = asyncio.get_running_loop()
        self._pending_removals[entity_id] = loop.call_later(
            self._removal_delay_s, self._finish_removal, entity_id
        )
        return True

    def _carry_removals(self) -> None:
        """Move pending removals to the slot their id now occupies."""
        for entity_id in list(self._pending_removals):
            row = self._rows.get(entity_id)
            if row is None:
                logger.debug("Removal of %s dropped, no longer listed", entity_id)
                self._cancel_removal(entity_id)
            else:
                row.start_removal()

    def _finish_removal(self, entity_id: str) -> None:
        self._pending_removals.pop(entity_id, None)
        row = self._rows.get(entity_id)
        if row is None:
            return
        row.destroy()
        del self._rows[entity_id]
        logger.info("Removed %s from list", entity_id)
        self._bus.publish(Topic.REMOVAL_COMPLETED, RemovalCompleted(id=entity_id))

    def _cancel_removal(self, entity_id: str) -> None:
        handle = self._pending_removals.pop(entity_id, None)
        if handle is not None:
            handle.cancel()

    # =========================================================================
    # States
    # =========================================================================

    def show_loading(self) -> None:
        if self._loading:
            return
        self._loading = True
        for row in self._rows.values():
            row.set_loading(True)

    def hide_loading(self) -> None:
        if not self._loading:
            return
        self._loading = False
        for row in self._rows.values():
            row.set_loading(False)

    def show_error(self, message: str) -> None:
        """Replace the rows with an error banner."""
        self.hide_loading()
        self.clear()
        self._restore_data = []
        self._view.show_error(message)

    def show_empty(self, message: str = "No coins found") -> None:
        """Replace the rows with an empty state, keeping their data for ``restore``."""
        self.hide_loading()
        # A second empty result keeps the rows hidden by the first
        if self._rows:
            self._restore_data = self.all_data()
        self.clear()
        self._view.show_empty(message)

    def restore(self) -> None:
        """Re-render the rows that were on screen before ``show_empty``."""
        data, self._restore_data = self._restore_data, []
        self.render(data)

    def clear(self) -> None:
        """Detach every row."""
        for entity_id in list(self._pending_removals):
            self._cancel_removal(entity_id)
        for row in self._rows.values():
            row.destroy()
        self._rows.clear()

    def close(self) -> None:
        """Unsubscribe from the bus and detach every row."""
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions = []
        self.clear()
