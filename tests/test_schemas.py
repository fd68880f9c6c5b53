import json

import numpy as np
import pytest

from travelmap.storage.document_store import sanitize
from travelmap.storage.schemas import (
    Box,
    DetectedFace,
    FamilyMember,
    Photo,
    TripsDocument,
    decode_member_descriptors,
    descriptor_to_string,
    parse_descriptor,
)


def test_optional_fields_are_omitted_not_nulled():
    face = DetectedFace(id="f1", thumbnail="", box=Box(1, 2, 3, 4), descriptor_string="[0.1]")
    stored = sanitize(face.as_dict())
    assert "assignedMemberId" not in stored
    assert "confidence" not in stored
    assert DetectedFace.from_dict(stored) == face


def test_photo_survives_storage_layout():
    photo = Photo(id="GE-1-abc", country_iso="GE", url="file:///x", name="x.jpg", created_at=5)
    stored = sanitize(photo.as_dict())
    assert stored["schemaVersion"] == 2
    assert Photo.from_dict(stored) == photo


def test_parse_descriptor_accepts_strings_and_lists():
    vector = parse_descriptor(descriptor_to_string([0.5, -0.25]))
    np.testing.assert_allclose(vector, [0.5, -0.25])
    np.testing.assert_allclose(parse_descriptor([1, 2, 3]), [1, 2, 3])


@pytest.mark.parametrize("payload", ["not json", "[]", "[[1, 2], [3, 4]]", '["a", "b"]'])
def test_parse_descriptor_rejects_malformed(payload):
    with pytest.raises(ValueError):
        parse_descriptor(payload)


def test_legacy_member_shapes_decode():
    assert len(decode_member_descriptors({"id": "m", "descriptorStrings": ["[1, 0]", "[0, 1]"]})) == 2
    assert len(decode_member_descriptors({"id": "m", "descriptors": [[1, 0], [0, 1], [1, 1]]})) == 3
    assert len(decode_member_descriptors({"id": "m", "descriptor": [1, 0]})) == 1
    assert decode_member_descriptors({"id": "m"}) == []


def test_malformed_member_descriptors_are_skipped_individually():
    record = {"id": "m", "descriptorStrings": ["[1, 0]", "garbage", "[0, 1]"]}
    assert len(decode_member_descriptors(record)) == 2


def test_v1_member_is_migrated():
    member = FamilyMember.from_dict(
        {"id": "family-1", "name": "Nino", "descriptor": [0.1, 0.2], "photoUrl": "file:///a.jpg"}
    )
    assert member.descriptor_strings == [json.dumps([0.1, 0.2])]
    assert member.photo_urls == ["file:///a.jpg"]
    assert len(member.descriptors()) == 1


def test_v1_photo_gets_empty_face_lists():
    photo = Photo.from_dict({"id": "p", "countryIso": " ge ", "url": "u", "name": "n", "createdAt": 3})
    assert photo.country_iso == "GE"
    assert photo.face_tags == []
    assert photo.detected_faces == []


def test_v1_trips_document_normalises_codes():
    doc = TripsDocument.from_dict(
        {
            "homeCountry": "ru",
            "visited": [
                {"countryName": "Georgia", "iso2": "ge", "continent": "Asia"},
                {"countryName": "Nowhere", "iso2": "", "continent": "Asia"},
            ],
        }
    )
    assert doc.home_country == "RU"
    assert [trip.iso2 for trip in doc.visited] == ["GE"]


def test_v1_member_with_flat_descriptors_is_migrated_without_them():
    member = FamilyMember.from_dict({"id": "family-legacy", "name": "Old", "descriptors": [0.1, 0.2]})
    assert member.name == "Old"
    assert member.descriptor_strings == []


def test_v1_member_keeps_well_formed_entries_next_to_broken_ones():
    member = FamilyMember.from_dict({"id": "family-mixed", "name": "Mixed", "descriptors": [[1, 0], 7, "[0, 1]"]})
    assert member.descriptor_strings == [json.dumps([1, 0]), "[0, 1]"]
