"""Tests for LocalStorage key semantics."""

import pytest


class TestLocalStorage:
    """Keys behave like S3 object keys."""

    def test_write_read(self, storage):
        info = storage.write("Foo/work/ts/h1/meta.json", '{"try": 0}')
        assert info.key == "Foo/work/ts/h1/meta.json"
        assert info.size == 10
        assert storage.read_text("Foo/work/ts/h1/meta.json") == '{"try": 0}'

    def test_read_missing(self, storage):
        with pytest.raises(FileNotFoundError):
            storage.read("nope")

    def test_exists_and_info(self, storage):
        storage.write("a/b.txt", b"x")
        assert storage.exists("a/b.txt")
        assert not storage.exists("a/c.txt")
        info = storage.info("a/b.txt")
        assert info is not None and info.last_modified is not None
        assert storage.info("a/c.txt") is None

    def test_delete_prunes_empty_prefixes(self, storage):
        storage.write("Foo/work/ts/h1/vote.txt", "3")
        assert storage.delete("Foo/work/ts/h1/vote.txt") is True
        assert storage.list_prefixes("") == []
        assert storage.delete("Foo/work/ts/h1/vote.txt") is False

    def test_copy(self, storage):
        storage.write("src/all.mp3", b"mp3")
        storage.copy("src/all.mp3", "dst/rec/x.mp3")
        assert storage.read("dst/rec/x.mp3") == b"mp3"
        assert storage.exists("src/all.mp3")

    def test_copy_missing(self, storage):
        with pytest.raises(FileNotFoundError):
            storage.copy("missing", "dst")

    def test_list_is_recursive_and_prefix_filtered(self, storage):
        storage.write("Foo/work/ts/h1/meta.json", "{}")
        storage.write("Foo/work/ts/h2/meta.json", "{}")
        storage.write("Foo/work/ts/work-mark", "h1")
        storage.write("Foobar/x", "y")
        keys = [info.key for info in storage.list("Foo/")]
        assert keys == ["Foo/work/ts/h1/meta.json", "Foo/work/ts/h2/meta.json", "Foo/work/ts/work-mark"]

    def test_list_partial_name(self, storage):
        storage.write("Foo/a1", "1")
        storage.write("Foo/a2", "2")
        storage.write("Foo/b1", "3")
        assert [info.key for info in storage.list("Foo/a")] == ["Foo/a1", "Foo/a2"]

    def test_list_prefixes_one_level(self, storage):
        storage.write("Foo/work/ts1/h1/meta.json", "{}")
        storage.write("Foo/work/ts2/h1/meta.json", "{}")
        storage.write("Bar/rec/ts.json", "{}")
        assert storage.list_prefixes("") == ["Bar/", "Foo/"]
        assert storage.list_prefixes("Foo/work/") == ["Foo/work/ts1/", "Foo/work/ts2/"]
        assert storage.list_prefixes("Nothing/") == []

    def test_path_escape_rejected(self, storage):
        with pytest.raises(ValueError):
            storage.write("../outside", "x")

    def test_delete_many_counts_removed(self, storage):
        storage.write("Foo/work/ts/h1/a", "1")
        storage.write("Foo/work/ts/h1/b", "2")
        assert storage.delete_many(["Foo/work/ts/h1/a", "Foo/work/ts/h1/b", "Foo/work/ts/h1/c"]) == 2
        assert storage.list_prefixes("Foo/") == []
