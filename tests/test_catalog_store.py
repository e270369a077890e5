import sqlite3
from pathlib import Path
from typing import List

import pytest

from catalog.identity import compute_item_id
from catalog.store import CatalogStore
from catalog.types import CatalogItem

NOW = 1_760_000_000
DAY = 24 * 60 * 60


class Clock:
    def __init__(self, now: int = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return float(self.now)


def _item(title: str, *, channel: str = "ARD", date_ts=NOW - DAY, topic=None, category="docs") -> CatalogItem:
    website = f"https://www.example/{title.lower().replace(' ', '-')}"
    return CatalogItem(
        id=compute_item_id(channel, website, None, title, date_ts),
        title=title,
        channel=channel,
        topic=topic,
        description=f"About {title}",
        date_ts=date_ts,
        url_website=website,
        category=category,
    )


def _fts_count(store: CatalogStore) -> int:
    return store.connection.execute("SELECT COUNT(*) FROM items_fts").fetchone()[0]


def test_upsert_keeps_fts_in_sync(tmp_path: Path) -> None:
    with CatalogStore.open(tmp_path / "catalog.db", clock=Clock()) as store:
        inserted = store.upsert_one(_item("Polarlichter über Island", topic="Reise"))

        assert inserted is True
        assert store.count() == 1
        assert _fts_count(store) == 1
        hits = store.search("polarlichter")
        assert [hit.title for hit in hits] == ["Polarlichter über Island"]
        assert store.search("Reise")[0].topic == "Reise"
        assert store.search("   ") == []


def test_conflict_touches_only_updated_at(tmp_path: Path) -> None:
    clock = Clock()
    with CatalogStore.open(tmp_path / "catalog.db", clock=clock) as store:
        original = _item("Wattenmeer")
        store.upsert_one(original)

        clock.now += 3600
        changed = _item("Wattenmeer", category="knowledge")
        changed.description = "Neu beschrieben"
        assert store.upsert_one(changed) is False

        stored = store.get_item(original.id)
        assert stored is not None
        assert stored.category == "docs"
        assert stored.description == "About Wattenmeer"
        assert stored.created_at == NOW
        assert stored.updated_at == NOW + 3600


def test_overwrite_on_conflict_refreshes_content_and_fts(tmp_path: Path) -> None:
    with CatalogStore.open(tmp_path / "catalog.db", clock=Clock(), overwrite_on_conflict=True) as store:
        original = _item("Wattenmeer")
        store.upsert_one(original)

        changed = _item("Wattenmeer", category="knowledge")
        changed.description = "Seehunde und Gezeiten"
        store.upsert_one(changed)

        stored = store.get_item(original.id)
        assert stored is not None
        assert stored.category == "knowledge"
        assert _fts_count(store) == 1
        assert [hit.id for hit in store.search("Seehunde")] == [original.id]
        assert store.search("About") == []


def test_bulk_upsert_batches(tmp_path: Path) -> None:
    with CatalogStore.open(tmp_path / "catalog.db", clock=Clock()) as store:
        items = [_item(f"Folge {index}") for index in range(5)]
        result = store.upsert_bulk(items, batch_size=2)

        assert result.batches == 3
        assert result.inserted == 5
        assert result.updated == 0

        again = store.upsert_bulk(items[:2])
        assert again.inserted == 0
        assert again.updated == 2


def test_prune_removes_old_items_and_fts_rows(tmp_path: Path) -> None:
    with CatalogStore.open(tmp_path / "catalog.db", clock=Clock()) as store:
        store.upsert_bulk(
            [
                _item("Aktuell", date_ts=NOW - 5 * DAY),
                _item("Alt", date_ts=NOW - 91 * DAY),
                _item("Uralt", date_ts=NOW - 400 * DAY),
                _item("Ohne Datum", date_ts=None),
            ]
        )

        deleted = store.prune_older_than(90, now=NOW)

        assert deleted == 2
        assert store.count() == 2
        assert _fts_count(store) == 2
        assert store.search("Uralt") == []
        assert {hit.title for hit in store.search("Ohne")} == {"Ohne Datum"}


def test_failed_batch_rolls_back_but_earlier_batches_stay_visible(tmp_path: Path) -> None:
    db_path = tmp_path / "catalog.db"
    store = CatalogStore.open(db_path, clock=Clock())
    reader = sqlite3.connect(db_path)
    try:
        good: List[CatalogItem] = [_item("Eins"), _item("Zwei")]
        broken = _item("Drei")
        broken.title = None  # type: ignore[assignment]

        with pytest.raises(sqlite3.IntegrityError):
            store.upsert_bulk(good + [_item("Vier"), broken], batch_size=2)

        visible = {row[0] for row in reader.execute("SELECT title FROM items").fetchall()}
        assert visible == {"Eins", "Zwei"}
        fts_rows = reader.execute("SELECT COUNT(*) FROM items_fts").fetchone()[0]
        assert fts_rows == 2
    finally:
        reader.close()
        store.close()


def test_stats(tmp_path: Path) -> None:
    with CatalogStore.open(tmp_path / "catalog.db", clock=Clock()) as store:
        store.upsert_bulk(
            [
                _item("A", channel="ARD", date_ts=NOW - DAY),
                _item("B", channel="ARD", date_ts=NOW - 2 * DAY, category="news"),
                _item("C", channel="ZDF", date_ts=NOW - 3 * DAY),
            ]
        )
        stats = store.stats(top_channels=1)

        assert stats.total_count == 3
        assert stats.max_date_ts == NOW - DAY
        assert stats.by_category == {"docs": 2, "news": 1}
        assert stats.by_channel == [("ARD", 2)]
        store.optimize()
