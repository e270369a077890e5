import logging
import sqlite3
from pathlib import Path

import pytest

from catalog.classifier import Classifier
from catalog.errors import SchemaError
from catalog.importer import Importer, build_projection, detect_column_mapping
from catalog.store import CatalogStore
from tests.fixtures import DAY, FIXED_NOW, build_snapshot, film_row


def _clock() -> float:
    return float(FIXED_NOW)


def _importer(snapshot: Path, store: CatalogStore, **kwargs) -> Importer:
    return Importer(snapshot, store, Classifier.from_path(), clock=_clock, **kwargs)


def test_detect_column_mapping_first_candidate_wins() -> None:
    mapping = detect_column_mapping(["Titel", "thema", "SENDER", "url", "Timestamp", "extra"])

    assert mapping.get("title") == "Titel"
    assert mapping.get("topic") == "thema"
    assert mapping.get("channel") == "SENDER"
    assert mapping.get("date_ts") == "Timestamp"
    assert mapping.get("url_video") == "url"
    assert mapping.get("url_website") is None
    assert mapping.missing(["title", "url_website"]) == ["url_website"]


def test_build_projection_aliases_logical_names() -> None:
    mapping = detect_column_mapping(["titel", "url"])
    query = build_projection("film list", mapping)

    assert query == 'SELECT "titel" AS "title", "url" AS "url_video" FROM "film list"'


def test_missing_title_column_fails_before_writing(tmp_path: Path) -> None:
    snapshot = build_snapshot(
        tmp_path / "snapshot.db",
        [{"name": "Film", "url": "https://media.example/film.mp4"}],
        columns=("name TEXT", "url TEXT"),
    )
    with CatalogStore.open(tmp_path / "catalog.db") as store:
        with pytest.raises(SchemaError) as excinfo:
            _importer(snapshot, store)

        assert "title" in excinfo.value.missing
        assert store.count() == 0


def test_unparsable_date_keeps_row_without_timestamp(tmp_path: Path) -> None:
    snapshot = build_snapshot(
        tmp_path / "snapshot.db",
        [
            film_row("Erster Film", ts=FIXED_NOW - DAY),
            film_row("Zweiter Film", ts=str(FIXED_NOW - 2 * DAY)),
            film_row("Dritter Film", ts="irgendwann bald"),
        ],
    )
    with CatalogStore.open(tmp_path / "catalog.db", clock=_clock) as store:
        result = _importer(snapshot, store).run()

        assert result.rows_read == 3
        assert result.imported == 3
        assert result.rejected == 0
        assert result.failed == 0
        dates = {
            row[0]: row[1]
            for row in store.connection.execute("SELECT title, date_ts FROM items").fetchall()
        }
        assert dates == {
            "Erster Film": FIXED_NOW - DAY,
            "Zweiter Film": FIXED_NOW - 2 * DAY,
            "Dritter Film": None,
        }
        assert result.stats.total_count == 3
        assert result.stats.max_date_ts == FIXED_NOW - DAY


def test_rows_without_title_or_locator_are_rejected(tmp_path: Path) -> None:
    snapshot = build_snapshot(
        tmp_path / "snapshot.db",
        [
            film_row("Gut"),
            film_row(None),
            film_row("Ohne Links", url="", website=None),
            film_row("Nur Seite", url="", website="https://www.example/nur-seite"),
        ],
    )
    with CatalogStore.open(tmp_path / "catalog.db", clock=_clock) as store:
        result = _importer(snapshot, store).run()

        assert result.imported == 2
        assert result.rejected == 2
        assert {item.title for item in store.search("Gut") + store.search("Seite")} == {"Gut", "Nur Seite"}


def test_transform_failures_are_logged_and_skipped(tmp_path: Path, monkeypatch, caplog) -> None:
    snapshot = build_snapshot(
        tmp_path / "snapshot.db",
        [film_row("Eins"), film_row("Kaputt", dauer="boom"), film_row("Drei")],
    )
    from catalog import importer as importer_module

    original = importer_module.parse_duration

    def fragile_duration(value):
        if value == "boom":
            raise ValueError("duration overflow")
        return original(value)

    monkeypatch.setattr(importer_module, "parse_duration", fragile_duration)

    with CatalogStore.open(tmp_path / "catalog.db", clock=_clock) as store:
        with caplog.at_level(logging.WARNING, logger="mediacatalog.catalog.importer"):
            result = _importer(snapshot, store).run()

        assert result.failed == 1
        assert result.imported == 2
        assert store.count() == 2
    skipped = [record for record in caplog.records if "Row skipped" in record.getMessage()]
    assert len(skipped) == 1
    assert skipped[0].row["title"] == "Kaputt"


def test_invalid_utf8_text_is_replaced_not_fatal(tmp_path: Path) -> None:
    snapshot = build_snapshot(
        tmp_path / "snapshot.db",
        [film_row("Sauber"), film_row("Verstuemmelt")],
    )
    conn = sqlite3.connect(snapshot)
    try:
        conn.execute(
            "UPDATE film SET beschreibung = CAST(X'C328' AS TEXT) WHERE titel = ?",
            ("Verstuemmelt",),
        )
        conn.commit()
    finally:
        conn.close()

    with CatalogStore.open(tmp_path / "catalog.db", clock=_clock) as store:
        result = _importer(snapshot, store).run()

        assert result.rows_read == 2
        assert result.imported == 2
        assert result.failed == 0
        damaged = store.search("Verstuemmelt")
        assert len(damaged) == 1
        assert "�" in damaged[0].description


def test_channels_categories_and_posters_are_resolved(tmp_path: Path) -> None:
    snapshot = build_snapshot(
        tmp_path / "snapshot.db",
        [
            film_row("Die Sendung mit der Maus", channel=14),
            film_row("Abendprogramm", channel=99),
            film_row("Mit Untertiteln", channel=2, url_video_hd="https://media.example/hd.mp4", url_subtitle="x.vtt"),
        ],
    )
    with CatalogStore.open(tmp_path / "catalog.db", clock=_clock) as store:
        _importer(snapshot, store).run()
        items = {
            item.title: item
            for item in store.search("Maus") + store.search("Abendprogramm") + store.search("Untertiteln")
        }

    assert items["Die Sendung mit der Maus"].channel == "KIKA"
    assert items["Die Sendung mit der Maus"].category == "kids"
    assert items["Die Sendung mit der Maus"].poster.endswith("/kika.png")
    assert items["Abendprogramm"].channel == "Channel 99"
    assert items["Abendprogramm"].category == "uncategorized"
    assert items["Abendprogramm"].poster is None
    assert items["Mit Untertiteln"].is_hd is True
    assert items["Mit Untertiteln"].has_subtitles is True
    assert items["Die Sendung mit der Maus"].duration_sec == 2700


def test_retention_prunes_old_rows_after_import(tmp_path: Path) -> None:
    snapshot = build_snapshot(
        tmp_path / "snapshot.db",
        [
            film_row("Neu", ts=FIXED_NOW - DAY),
            film_row("Alt", ts=FIXED_NOW - 120 * DAY),
        ],
    )
    with CatalogStore.open(tmp_path / "catalog.db", clock=_clock) as store:
        result = _importer(snapshot, store, batch_size=1, retention_days=90).run()

        assert result.imported == 2
        assert result.pruned == 1
        assert result.batches == 2
        assert store.count() == 1
        assert result.as_dict()["table"] == "film"
