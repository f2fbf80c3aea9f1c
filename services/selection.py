from typing import Iterable, List, Sequence, Set


class SelectionSet:
    """Record ids picked by the operator.

    Bulk operations take the ids currently visible (after search narrowing),
    never the full loaded list; the caller computes that view.
    """

    def __init__(self, ids: Iterable[str] = ()):
        self._ids: Set[str] = set(ids)

    def has(self, record_id: str) -> bool:
        return record_id in self._ids

    __contains__ = has

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self):
        return iter(self._ids)

    def ids(self) -> List[str]:
        return sorted(self._ids)

    def toggle(self, record_id: str) -> bool:
        if record_id in self._ids:
            self._ids.discard(record_id)
            return False
        self._ids.add(record_id)
        return True

    def select_all(self, visible_ids: Sequence[str]) -> None:
        # Same size as the visible list means "everything is selected": deselect.
        if len(self._ids) == len(visible_ids):
            self._ids = set()
        else:
            self._ids = set(visible_ids)

    def select_first_n(self, visible_ids: Sequence[str], n: int) -> None:
        self._ids = set(list(visible_ids)[: max(0, int(n))])

    def clear(self) -> None:
        self._ids = set()
