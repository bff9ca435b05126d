"""Tests for the public listing index."""

import json

from agqr.coordination.index import ListingIndex, parse_entries
from agqr.coordination.work_store import WorkStore


def publish(storage, ts, program="Foo", title="Foo"):
    meta = {"single_mp3_path": f"/{program}/rec/{ts}.mp3", "program": {"title": title}}
    storage.write(f"{program}/rec/{ts}.json", json.dumps(meta))


def _index(storage):
    return ListingIndex(WorkStore(storage), "http://example.com/")


class TestListingIndex:
    """Append-only regeneration of index.html."""

    def test_first_render(self, storage):
        publish(storage, "2024-01-01_120000")
        assert _index(storage).update("Foo") == 1

        html = storage.read_text("Foo/index.html")
        assert "<!-- rec:2024-01-01_120000 -->" in html
        assert "<!-- /rec:2024-01-01_120000 -->" in html
        assert 'href="http://example.com/Foo/rec/2024-01-01_120000.mp3"' in html
        assert "2024-01-01 12:00" in html

    def test_chronological_order(self, storage):
        publish(storage, "2024-01-08_120000")
        publish(storage, "2024-01-01_120000")
        index = _index(storage)
        index.update("Foo")
        publish(storage, "2024-01-04_120000")
        assert index.update("Foo") == 1

        html = storage.read_text("Foo/index.html")
        assert list(parse_entries(html)) == [
            "2024-01-01_120000",
            "2024-01-04_120000",
            "2024-01-08_120000",
        ]

    def test_idempotent(self, counting_storage):
        publish(counting_storage, "2024-01-01_120000")
        index = _index(counting_storage)
        index.update("Foo")
        first = counting_storage.read_text("Foo/index.html")

        counting_storage.reset()
        assert index.update("Foo") == 0
        assert counting_storage.count("write") == 0
        assert counting_storage.read_text("Foo/index.html") == first

    def test_existing_entries_kept_verbatim(self, storage):
        publish(storage, "2024-01-01_120000")
        index = _index(storage)
        index.update("Foo")
        html = storage.read_text("Foo/index.html")
        edited = html.replace("2024-01-01 12:00", "New Year special")
        storage.write("Foo/index.html", edited)

        publish(storage, "2024-01-08_120000")
        index.update("Foo")

        html = storage.read_text("Foo/index.html")
        assert "New Year special" in html
        assert "<!-- rec:2024-01-08_120000 -->" in html

    def test_title_is_escaped(self, storage):
        publish(storage, "2024-01-01_120000", title="<b>Foo</b>")
        _index(storage).update("Foo")
        html = storage.read_text("Foo/index.html")
        assert "&lt;b&gt;Foo&lt;/b&gt;" in html

    def test_parse_entries_ignores_unmarked_markup(self):
        html = "<li>manual</li><!-- rec:a -->x<!-- /rec:a --><!-- rec:b -->"
        assert parse_entries(html) == {"a": "<!-- rec:a -->x<!-- /rec:a -->"}
