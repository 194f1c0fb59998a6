"""
MarketSync Backend — Saved-Items Ledger Tests
"""

from marketsync.schemas.domain import ContentItem, ProviderSnapshot
from marketsync.services.saved_items import SavedItemsLedger


def _item(item_id: str, category: str) -> ContentItem:
    return ContentItem(
        id=item_id,
        image=f"https://img.example.com/{item_id}.jpg",
        category=category,
        provider=ProviderSnapshot(id="p1", name="Maya Styles"),
    )


class TestSavedItemsLedger:

    def test_toggle_flips_membership(self):
        ledger = SavedItemsLedger()

        assert ledger.toggle("i1") is True
        assert "i1" in ledger
        assert ledger.toggle("i1") is False
        assert "i1" not in ledger

    def test_items_keep_save_order(self):
        ledger = SavedItemsLedger(["i2"])
        ledger.toggle("i1")
        ledger.toggle("i3")
        assert ledger.items() == ["i2", "i1", "i3"]

    def test_remove_and_clear(self):
        ledger = SavedItemsLedger(["i1", "i2"])
        ledger.remove("i1")
        ledger.remove("missing")
        assert ledger.items() == ["i2"]

        ledger.clear()
        assert len(ledger) == 0

    def test_saved_view_filters_catalog_and_category(self):
        ledger = SavedItemsLedger(["i1", "i3"])
        catalog = [_item("i1", "Hair"), _item("i2", "Hair"), _item("i3", "Nails")]

        assert [i.id for i in ledger.saved_view(catalog)] == ["i1", "i3"]
        assert [i.id for i in ledger.saved_view(catalog, "Nails")] == ["i3"]
        assert [i.id for i in ledger.saved_view(catalog, "All")] == ["i1", "i3"]
