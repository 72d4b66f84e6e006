"""Tests for the catalog cache."""

import json

import pytest

from jellytui.models import MediaItem
from jellytui.storage import CacheError, CatalogCache


@pytest.fixture
def sample_items():
    """Create a small catalog for testing."""
    items = [
        MediaItem(
            id="movie1",
            name="Inception",
            item_type="Movie",
            path="/media/movies/Inception.mkv",
            year=2010,
            overview="A thief who steals corporate secrets.",
            community_rating=8.8,
            critic_rating=87,
            runtime_ticks=88800000000,
        ),
        MediaItem(id="series1", name="Breaking Bad", item_type="Series", year=2008),
        MediaItem(
            id="ep1",
            name="Pilot",
            item_type="Episode",
            runtime_ticks=36000000000,
            series_id="series1",
            series_name="Breaking Bad",
            season_number=1,
            episode_number=1,
        ),
    ]
    return {item.id: item for item in items}


def test_save_and_load_round_trip(tmp_path, sample_items):
    """Saved catalog reloads to an identical mapping."""
    cache = CatalogCache(tmp_path / "cache.json")
    cache.save(sample_items)

    loaded = CatalogCache(tmp_path / "cache.json").load()
    assert loaded == sample_items


def test_cache_is_json_mapping_of_ids(tmp_path, sample_items):
    """Cache file is a JSON object keyed by item id."""
    cache = CatalogCache(tmp_path / "cache.json")
    cache.save(sample_items)

    data = json.loads((tmp_path / "cache.json").read_text())
    assert set(data) == {"movie1", "series1", "ep1"}
    assert data["ep1"]["series_name"] == "Breaking Bad"


def test_save_replaces_whole_file(tmp_path, sample_items):
    """A second save drops items that are no longer present."""
    cache = CatalogCache(tmp_path / "cache.json")
    cache.save(sample_items)
    cache.save({"movie1": sample_items["movie1"]})

    assert set(cache.load()) == {"movie1"}
    # No leftover temp files
    assert [p.name for p in tmp_path.iterdir()] == ["cache.json"]


def test_load_missing_file(tmp_path):
    """Missing cache raises CacheError."""
    cache = CatalogCache(tmp_path / "cache.json")
    assert cache.exists() is False
    with pytest.raises(CacheError, match="not found"):
        cache.load()


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        "[1, 2, 3]",
        '{"movie1": {"name": "No id"}}',
        '{"movie1": {"id": "movie1", "name": "x", "item_type": "Movie", "bogus": 1}}',
    ],
)
def test_load_corrupt_file(tmp_path, content):
    """Structurally invalid cache raises CacheError."""
    (tmp_path / "cache.json").write_text(content)

    with pytest.raises(CacheError):
        CatalogCache(tmp_path / "cache.json").load()


def test_clear(tmp_path, sample_items):
    """clear() removes the cache and tolerates a missing file."""
    cache = CatalogCache(tmp_path / "cache.json")
    cache.save(sample_items)

    cache.clear()
    assert cache.exists() is False
    cache.clear()
