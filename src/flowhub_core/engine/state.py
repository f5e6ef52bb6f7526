"""State history for undo/redo within a run."""

from typing import Any


class StateHistory:
    """Entries of a run's State, one per change, with a movable cursor.

    The history works on the live State dict in place, so every view of it
    (``NodeContext.state``, placeholders) sees the restored entry. Entries are
    shallow copies; values stored in State are shared, not copied.

    Example:
        history = StateHistory(state)
        state["a"] = 1
        history.commit()
        history.undo()  # state is back to its initial entry
    """

    def __init__(self, state: dict[str, Any], limit: int = 100):
        """Initialize history with the current State as entry 0.

        Args:
            state: Live State dict of the run
            limit: Entries kept; the oldest are dropped beyond it
        """
        self._state = state
        self._limit = max(limit, 1)
        self._entries: list[dict[str, Any]] = [dict(state)]
        self._index = 0

    @property
    def index(self) -> int:
        """Position of the entry the State currently matches."""
        return self._index

    def __len__(self) -> int:
        return len(self._entries)

    def can_undo(self) -> bool:
        return self._index > 0

    def can_redo(self) -> bool:
        return self._index < len(self._entries) - 1

    def commit(self) -> None:
        """Record the current State, discarding any redo entries."""
        del self._entries[self._index + 1 :]
        self._entries.append(dict(self._state))
        if len(self._entries) > self._limit:
            del self._entries[: len(self._entries) - self._limit]
        self._index = len(self._entries) - 1

    def undo(self) -> dict[str, Any]:
        """Step back one entry. No-op at the first entry.

        Returns:
            Copy of the State after the move
        """
        if self.can_undo():
            self._move(self._index - 1)
        return dict(self._state)

    def redo(self) -> dict[str, Any]:
        """Step forward one entry. No-op at the last entry."""
        if self.can_redo():
            self._move(self._index + 1)
        return dict(self._state)

    def go_to(self, index: int) -> dict[str, Any]:
        """Restore the entry at ``index``; out-of-range indexes leave State unchanged."""
        if 0 <= index < len(self._entries):
            self._move(index)
        return dict(self._state)

    def entries(self) -> list[dict[str, Any]]:
        return [dict(entry) for entry in self._entries]

    def _move(self, index: int) -> None:
        self._index = index
        self._state.clear()
        self._state.update(self._entries[index])
