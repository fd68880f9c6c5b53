import pytest

from travelmap.storage.schemas import FaceTag


def test_create_member_requires_name(family_store):
    with pytest.raises(ValueError):
        family_store.create_member("   ")


def test_members_are_listed_by_name(family_store):
    for name in ["nino", "Anna", "Giorgi"]:
        family_store.create_member(name)
    assert [m.name for m in family_store.list_members()] == ["Anna", "Giorgi", "nino"]


def test_member_ids_are_prefixed(family_store):
    member = family_store.create_member("Anna")
    assert member.id.startswith("family-")
    assert family_store.get_member(member.id).name == "Anna"


def test_add_member_descriptor_accumulates(family_store):
    member = family_store.save_member("Anna", [1.0, 0.0], photo_url="file:///a.jpg")
    family_store.add_member_descriptor(member.id, [0.9, 0.1], "file:///b.jpg")
    family_store.add_member_descriptor("family-missing", [0.0, 1.0], "file:///c.jpg")

    stored = family_store.get_member(member.id)
    assert len(stored.descriptors()) == 2
    assert stored.photo_urls == ["file:///a.jpg", "file:///b.jpg"]


def test_rename_member(family_store):
    member = family_store.create_member("Ana")
    family_store.rename_member(member.id, " Anna ")
    assert family_store.get_member(member.id).name == "Anna"
    with pytest.raises(ValueError):
        family_store.rename_member(member.id, "")


def test_deleting_member_leaves_tags_alone(family_store, photo_store):
    from tests.conftest import make_upload

    member = family_store.create_member("Anna")
    photo = photo_store.save_photo(
        "GE", make_upload(), face_tags=[FaceTag(member_id=member.id, member_name="Anna")]
    )
    family_store.delete_member(member.id)

    assert family_store.get_member(member.id) is None
    assert photo_store.get_photo(photo.id).face_tags[0].member_id == member.id


def test_unreadable_collection_lists_nothing(tmp_path, family_store, documents):
    (tmp_path / "documents" / "familyMembers.json").write_text("{ not json", encoding="utf-8")
    assert family_store.list_members() == []


def test_broken_legacy_member_does_not_hide_the_others(family_store, documents):
    documents.set("familyMembers", "family-legacy", {"id": "family-legacy", "name": "Old", "descriptors": [0.1, 0.2]})
    documents.set("familyMembers", "family-noid", {"name": "Nobody"})
    family_store.create_member("Anna")

    assert [m.name for m in family_store.list_members()] == ["Anna", "Old"]
