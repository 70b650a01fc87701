"""
Tests for tag favorites
"""

import json

import pytest

from camper_core.favorites import (
    MAX_FAVORITES,
    TagFavorite,
    dedupe_tags,
    favorite_key,
    load_tag_favorites,
    normalize_tag_name,
    parse_tags,
    record_favorite,
    remove_favorite,
    rename_tag_in_favorites,
    save_tag_favorites,
)


def fav(tags, when="2024-01-01T00:00:00.000Z", count=1):
    return TagFavorite(tags=list(tags), last_used_at=when, usage_count=count)


class TestTagHelpers:
    """Tests for tag normalization."""

    def test_normalize_tag_name(self):
        assert normalize_tag_name("  #Python ") == "python"
        assert normalize_tag_name("##x") == "#x"

    def test_dedupe_keeps_first_spelling(self):
        assert dedupe_tags(["Python", " ml ", "python", "", "ML"]) == ["Python", "ml"]

    def test_parse_tags(self):
        assert parse_tags("#python, ml,,Python") == ["python", "ml"]
        assert parse_tags("") == []
        assert parse_tags(" , ") == []

    def test_favorite_key(self):
        assert favorite_key(["#Python", "ML"]) == "python|ml"


class TestTagFavorite:
    """Tests for stored entry parsing."""

    def test_round_trip_dict(self):
        entry = fav(["a", "b"], count=3)
        assert TagFavorite.from_dict(entry.to_dict()) == entry

    @pytest.mark.parametrize("data", [None, [], {"tags": "a"}, {"tags": [1, 2]}, {"tags": []}])
    def test_unusable_entries(self, data):
        assert TagFavorite.from_dict(data) is None

    @pytest.mark.parametrize("count", ["3", True, -1, float("nan"), None])
    def test_bad_usage_count_becomes_one(self, count):
        entry = TagFavorite.from_dict({"tags": ["a"], "lastUsedAt": "2024-01-01T00:00:00Z", "usageCount": count})
        assert entry.usage_count == 1

    def test_bad_timestamp_replaced(self):
        entry = TagFavorite.from_dict({"tags": ["a"], "lastUsedAt": "yesterday"})
        assert entry.last_used_at.endswith("Z")
        assert entry.last_used.year >= 2024


class TestPersistence:
    """Tests for loading and saving."""

    def test_missing_file(self, tmp_path):
        assert load_tag_favorites(tmp_path / "none.json") == []

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "dir" / "tag-favorites.json"
        favorites = [fav(["a"], count=2), fav(["b", "c"])]
        assert save_tag_favorites(path, favorites) is True
        assert load_tag_favorites(path) == favorites
        assert json.loads(path.read_text())[0] == {
            "tags": ["a"],
            "lastUsedAt": "2024-01-01T00:00:00.000Z",
            "usageCount": 2,
        }

    def test_malformed_contents(self, tmp_path, caplog):
        path = tmp_path / "tag-favorites.json"
        path.write_text("{not json")
        assert load_tag_favorites(path) == []
        path.write_text('{"tags": ["a"]}')
        assert load_tag_favorites(path) == []
        assert "expected a JSON array" in caplog.text

    def test_invalid_entries_skipped(self, tmp_path):
        path = tmp_path / "tag-favorites.json"
        path.write_text(json.dumps([{"tags": ["a"]}, "junk", {"tags": []}]))
        assert [f.tags for f in load_tag_favorites(path)] == [["a"]]

    def test_save_failure_reported(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        assert save_tag_favorites(blocker / "tag-favorites.json", []) is False


class TestRecordFavorite:
    """Tests for record_favorite."""

    def test_adds_new_entry_at_front(self):
        result = record_favorite([fav(["a"])], ["#b", "B"])
        assert [f.tags for f in result] == [["#b"], ["a"]]
        assert result[0].usage_count == 1

    def test_bumps_existing(self):
        result = record_favorite([fav(["a"]), fav(["Python"], count=4)], ["python"])
        assert [f.tags for f in result] == [["python"], ["a"]]
        assert result[0].usage_count == 5

    def test_empty_tags_ignored(self):
        assert record_favorite([], [" ", ""]) is None

    def test_only_bump(self):
        assert record_favorite([fav(["a"])], ["b"], only_bump=True) is None
        assert record_favorite([fav(["a"])], ["a"], only_bump=True)[0].usage_count == 2

    def test_capped(self):
        favorites = [fav([f"t{i}"]) for i in range(MAX_FAVORITES)]
        result = record_favorite(favorites, ["new"])
        assert len(result) == MAX_FAVORITES
        assert result[0].tags == ["new"]
        assert result[-1].tags == [f"t{MAX_FAVORITES - 2}"]


class TestRemoveAndRename:
    """Tests for remove_favorite and rename_tag_in_favorites."""

    def test_remove(self):
        favorites = [fav(["a"]), fav(["b"])]
        assert [f.tags for f in remove_favorite(favorites, 0)] == [["b"]]
        assert remove_favorite(favorites, 2) is None
        assert remove_favorite(favorites, -1) is None

    def test_rename(self):
        favorites = [fav(["py", "ml"], "2024-02-01T00:00:00Z"), fav(["rust"], "2024-01-01T00:00:00Z")]
        result = rename_tag_in_favorites(favorites, "#PY", "python")
        assert [f.tags for f in result] == [["python", "ml"], ["rust"]]

    def test_rename_merges_collisions(self):
        favorites = [
            fav(["py"], "2024-01-01T00:00:00Z", count=2),
            fav(["python"], "2024-03-01T00:00:00Z", count=3),
        ]
        result = rename_tag_in_favorites(favorites, "py", "python")
        assert len(result) == 1
        assert result[0].usage_count == 5
        assert result[0].last_used_at == "2024-03-01T00:00:00Z"

    def test_rename_no_change(self):
        favorites = [fav(["a"])]
        assert rename_tag_in_favorites(favorites, "zzz", "b") is None
        assert rename_tag_in_favorites(favorites, "a", " ") is None
        assert rename_tag_in_favorites(favorites, "a", "#A") is None
