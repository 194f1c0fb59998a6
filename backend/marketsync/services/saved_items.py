"""
MarketSync Backend — Saved-Items Ledger
=========================================

What:  The viewer's bookmarked ("shelved") item ids for the current session.
Why:   Bookmarks are client-local; nothing here touches the store, so the
       ledger lives and dies with the session that created it.
"""

from typing import Iterable, List, Optional

from marketsync.schemas.domain import ContentItem
from marketsync.services.feed_service import matches_category


class SavedItemsLedger:
    """Insertion-ordered set of item ids."""

    def __init__(self, initial: Optional[Iterable[str]] = None):
        self._ids = dict.fromkeys(initial or ())

    def toggle(self, item_id: str) -> bool:
        """Flip membership; returns True if the item is now saved."""
        if item_id in self._ids:
            del self._ids[item_id]
            return False
        self._ids[item_id] = None
        return True

    def remove(self, item_id: str) -> None:
        self._ids.pop(item_id, None)

    def clear(self) -> None:
        """Drop every bookmark (sign-out)."""
        self._ids.clear()

    def items(self) -> List[str]:
        return list(self._ids)

    def saved_view(self, items: Iterable[ContentItem], category: Optional[str] = None) -> List[ContentItem]:
        """The subset of `items` that is saved, optionally for one category."""
        return [
            item for item in items
            if item.id in self._ids and matches_category(item, category)
        ]

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)
