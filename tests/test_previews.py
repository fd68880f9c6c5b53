from travelmap.services.previews import PhotoPreviews
from travelmap.storage.schemas import Photo


def _photo(photo_id, iso, created_at):
    return Photo(id=photo_id, country_iso=iso, url=f"url-{photo_id}", name="", created_at=created_at)


def test_rebuild_keeps_latest_photo_and_counts_all():
    previews = PhotoPreviews()
    previews.rebuild([_photo("a", "GE", 10), _photo("b", "ge", 30), _photo("c", "GE", 20), _photo("d", "TR", 5)])

    assert previews.previews() == {"GE": "url-b", "TR": "url-d"}
    assert previews.counts() == {"GE": 3, "TR": 1}


def test_register_prefers_newer_or_equal():
    previews = PhotoPreviews()
    previews.register(_photo("a", "GE", 10))
    previews.register(_photo("b", "GE", 10))
    previews.register(_photo("c", "GE", 5))

    assert previews.previews() == {"GE": "url-b"}
    assert previews.counts() == {"GE": 3}


def test_photos_without_country_are_ignored():
    previews = PhotoPreviews()
    previews.rebuild([_photo("a", "", 1)])
    previews.register(_photo("b", "  ", 2))
    assert previews.counts() == {}
