from __future__ import annotations

from typing import Dict, Iterable

from .models.proposal import ProposalLineItem
from .models.submission import SelectedService


class SelectionLedger:
    """Which line items the client keeps, and the note left on each.

    Keys are line-item identities (``service_id``). The ledger is local state
    only: nothing here talks to the gateway.
    """

    def __init__(self) -> None:
        self._included: Dict[int, bool] = {}
        self._notes: Dict[int, str] = {}

    @classmethod
    def seed(cls, items: Iterable[ProposalLineItem]) -> "SelectionLedger":
        ledger = cls()
        for item in items:
            ledger._included[item.key] = True
            ledger._notes[item.key] = item.client_notes or ""
        return ledger

    def __len__(self) -> int:
        return len(self._included)

    def __contains__(self, key: object) -> bool:
        return key in self._included

    def keys(self) -> list[int]:
        return list(self._included)

    def is_selected(self, key: int) -> bool:
        return self._included.get(key, False)

    def note(self, key: int) -> str:
        return self._notes.get(key, "")

    def toggle(self, key: int) -> bool:
        self._require(key)
        self._included[key] = not self._included[key]
        return self._included[key]

    def set_selected(self, key: int, included: bool) -> None:
        self._require(key)
        self._included[key] = included

    def set_all(self, included: bool) -> None:
        for key in self._included:
            self._included[key] = included

    def set_note(self, key: int, note: str) -> None:
        self._require(key)
        self._notes[key] = note

    def selected_count(self) -> int:
        return sum(1 for included in self._included.values() if included)

    def has_selection(self) -> bool:
        return any(self._included.values())

    def all_selected(self) -> bool:
        if not self._included:
            return False
        return all(self._included.values())

    def some_selected(self) -> bool:
        count = self.selected_count()
        return 0 < count < len(self._included)

    def entries(self) -> list[SelectedService]:
        return [
            SelectedService(service_id=key, selected=included, client_notes=self._notes.get(key, ""))
            for key, included in self._included.items()
        ]

    def _require(self, key: int) -> None:
        if key not in self._included:
            raise KeyError(key)


__all__ = ["SelectionLedger"]
