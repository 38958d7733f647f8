"""In-memory state grid mirroring the key panel."""

from dataclasses import dataclass, replace
from datetime import date
from typing import Iterator, Optional


@dataclass(frozen=True)
class Cell:
    """One key: a habit row crossed with a day column."""
    index: int
    habit_name: str
    habit_id: str
    date: date
    is_done: bool
    version: int = 0  # engine sequence number of the last local change

    def same_state(self, other: "Cell") -> bool:
        return (self.habit_id, self.date, self.is_done) == (
            other.habit_id,
            other.date,
            other.is_done,
        )


@dataclass(frozen=True)
class CellChange:
    """A cell whose state differs between two grids."""
    old: Optional[Cell]
    new: Cell


class StateGrid:
    """
    Ordered rows x cols cells, index = row * cols + col (0-based).

    Cells are immutable; a sync builds a new grid and a press replaces a
    single cell through with_cell().
    """

    def __init__(self, rows: int, cols: int, cells: Optional[list[Cell]] = None):
        self.rows = rows
        self.cols = cols
        self._cells: list[Cell] = list(cells or [])
        if self._cells and len(self._cells) != rows * cols:
            raise ValueError(
                f"Grid of {rows}x{cols} needs {rows * cols} cells, got {len(self._cells)}"
            )

    @classmethod
    def build(
        cls,
        habits: list[tuple[str, str]],
        window: list[date],
        done: list[set[date]],
    ) -> "StateGrid":
        """
        Build a populated grid.

        Args:
            habits: (name, id) per row
            window: Dates per column, oldest first
            done: Completed days per row
        """
        cols = len(window)
        cells = []
        for row, ((name, habit_id), days) in enumerate(zip(habits, done)):
            for col, day in enumerate(window):
                cells.append(
                    Cell(
                        index=row * cols + col,
                        habit_name=name,
                        habit_id=habit_id,
                        date=day,
                        is_done=day in days,
                    )
                )
        return cls(len(habits), cols, cells)

    @property
    def is_populated(self) -> bool:
        return bool(self._cells)

    def __len__(self) -> int:
        return len(self._cells)

    def __iter__(self) -> Iterator[Cell]:
        return iter(self._cells)

    def get(self, index: int) -> Optional[Cell]:
        if 0 <= index < len(self._cells):
            return self._cells[index]
        return None

    def find(self, habit_id: str, day: date) -> Optional[Cell]:
        for cell in self._cells:
            if cell.habit_id == habit_id and cell.date == day:
                return cell
        return None

    def with_cell(self, cell: Cell) -> "StateGrid":
        """Copy of this grid with the cell at cell.index replaced."""
        cells = list(self._cells)
        cells[cell.index] = cell
        return StateGrid(self.rows, self.cols, cells)

    def merge_local(self, newer_than: int, previous: "StateGrid") -> "StateGrid":
        """
        Keep local changes the remote snapshot may not reflect yet.

        Cells of previous with a version above newer_than were changed
        locally after the snapshot was requested; their value wins over
        the one in this grid.
        """
        cells = []
        for cell in self._cells:
            local = previous.find(cell.habit_id, cell.date)
            if local and local.version > newer_than:
                cell = replace(cell, is_done=local.is_done, version=local.version)
            cells.append(cell)
        return StateGrid(self.rows, self.cols, cells)

    def diff(self, previous: "StateGrid") -> list[CellChange]:
        """
        Cells of this grid whose (habit, date, is_done) is not in previous.

        A cell for a habit/day previous does not cover (first sync, or a
        day that just slid into the window) is reported with old=None.
        """
        known = {(cell.habit_id, cell.date): cell for cell in previous}
        changes = []
        for cell in self._cells:
            old = known.get((cell.habit_id, cell.date))
            if old is None or not old.same_state(cell):
                changes.append(CellChange(old=old, new=cell))
        return changes
