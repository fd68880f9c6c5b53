from tests.conftest import ALICE, STRANGER, make_image_bytes, make_upload
from travelmap.errors import PersistenceError
from travelmap.services.photo_uploads import PhotoUploadService
from travelmap.services.tagging import people_count
from travelmap.utils.image_utils import UploadedImage


def _enroll(family_store, name, descriptor):
    return family_store.save_member(name, descriptor)


def test_upload_without_members_stores_unlabelled_faces(upload_service, detector, embedder, photo_store):
    detector.boxes = [(4, 4, 20, 20)]
    embedder.descriptors = [ALICE]

    result = upload_service.upload_batch("GE", [make_upload()])

    photo = photo_store.get_photo(result.photos[0].id)
    assert photo.face_tags == []
    assert len(photo.detected_faces) == 1
    face = photo.detected_faces[0]
    assert face.thumbnail.startswith("data:image/jpeg;base64,")
    assert face.suggested_member_id is None
    assert face.assigned_member_id is None
    assert face.descriptor().tolist() == ALICE


def test_known_face_is_tagged_and_assigned(upload_service, detector, embedder, family_store, photo_store):
    anna = _enroll(family_store, "Anna", ALICE)
    detector.boxes = [(4, 4, 20, 20), (30, 4, 20, 20)]
    embedder.descriptors = [ALICE, STRANGER]

    photo = upload_service.upload_one("GE", make_upload())
    stored = photo_store.get_photo(photo.id)

    assert [(t.member_id, t.member_name) for t in stored.face_tags] == [(anna.id, "Anna")]
    known, unknown = stored.detected_faces
    assert known.suggested_member_id == anna.id
    assert known.assigned_member_id == anna.id
    assert known.confidence is not None
    assert unknown.suggested_member_id is None
    assert unknown.assigned_member_id is None


def test_without_auto_assign_only_suggestions_are_stored(
    photo_store, family_store, extractor, matcher, detector, embedder
):
    anna = _enroll(family_store, "Anna", ALICE)
    detector.boxes = [(4, 4, 20, 20)]
    embedder.descriptors = [ALICE]
    service = PhotoUploadService(photo_store, family_store, extractor, matcher, auto_assign=False)

    photo = service.upload_one("GE", make_upload())

    assert photo.face_tags == []
    assert photo.detected_faces[0].suggested_member_id == anna.id
    assert photo.detected_faces[0].assigned_member_id is None


def test_detection_failure_still_uploads(upload_service, detector, photo_store):
    detector.fail = True
    result = upload_service.upload_batch("GE", [make_upload()])
    assert result.failures == []
    assert photo_store.get_photo(result.photos[0].id).detected_faces == []


def test_webp_is_stored_as_jpeg(upload_service, objects):
    upload = UploadedImage("sea.webp", "image/webp", make_image_bytes(fmt="WEBP"))
    photo = upload_service.upload_one("TR", upload)
    assert photo.name == "sea.jpg"
    assert objects.content_type(f"photos/{photo.id}") == "image/jpeg"


def test_batch_skips_non_images_and_isolates_failures(upload_service, photo_store, monkeypatch):
    real_save = photo_store.save_photo

    def flaky_save(country_iso, upload, *args, **kwargs):
        if upload.name == "bad.jpg":
            raise PersistenceError("quota exceeded")
        return real_save(country_iso, upload, *args, **kwargs)

    monkeypatch.setattr(photo_store, "save_photo", flaky_save)
    seen = []
    uploads = [
        make_upload("one.jpg"),
        UploadedImage("notes.txt", "text/plain", b"hello"),
        make_upload("bad.jpg"),
        make_upload("two.png", "image/png"),
    ]

    result = upload_service.upload_batch("GE", uploads, on_photo=seen.append)

    assert [p.name for p in result.photos] == ["one.jpg", "two.png"]
    assert [p.name for p in seen] == ["one.jpg", "two.png"]
    assert result.skipped == ["notes.txt"]
    assert [(f.name, f.error) for f in result.failures] == [("bad.jpg", "quota exceeded")]
    assert len(photo_store.photos_for_country("GE")) == 2


def test_zero_face_upload_has_no_tags_and_no_people(upload_service, photo_store):
    result = upload_service.upload_batch("GE", [make_upload()])

    photo = photo_store.get_photo(result.photos[0].id)
    assert photo.detected_faces == []
    assert photo.face_tags == []
    assert people_count(photo) == 0


def test_broken_legacy_member_does_not_stop_the_batch(upload_service, family_store, documents, detector, embedder):
    anna = _enroll(family_store, "Anna", ALICE)
    documents.set("familyMembers", "family-legacy", {"id": "family-legacy", "name": "Old", "descriptors": [0.1, 0.2]})
    detector.boxes = [(4, 4, 20, 20)]
    embedder.descriptors = [ALICE]

    result = upload_service.upload_batch("GE", [make_upload("a.jpg"), make_upload("b.jpg")])

    assert result.failures == []
    assert [p.name for p in result.photos] == ["a.jpg", "b.jpg"]
    assert [t.member_id for t in result.photos[0].face_tags] == [anna.id]


def test_unexpected_error_fails_only_that_file(upload_service, photo_store, monkeypatch):
    real_save = photo_store.save_photo

    def broken_save(country_iso, upload, *args, **kwargs):
        if upload.name == "bad.jpg":
            raise RuntimeError("disk on fire")
        return real_save(country_iso, upload, *args, **kwargs)

    monkeypatch.setattr(photo_store, "save_photo", broken_save)

    result = upload_service.upload_batch("GE", [make_upload("bad.jpg"), make_upload("good.jpg")])

    assert [p.name for p in result.photos] == ["good.jpg"]
    assert [(f.name, f.error) for f in result.failures] == [("bad.jpg", "disk on fire")]


def test_mixed_batch_reports_every_failure_next_to_the_success(upload_service, photo_store, monkeypatch):
    real_save = photo_store.save_photo

    def flaky_save(country_iso, upload, *args, **kwargs):
        if upload.name == "bad.jpg":
            raise PersistenceError("quota exceeded")
        return real_save(country_iso, upload, *args, **kwargs)

    monkeypatch.setattr(photo_store, "save_photo", flaky_save)
    uploads = [make_upload("bad.jpg"), UploadedImage("notes.txt", "text/plain", b"hi"), make_upload("ok.jpg")]

    notices = upload_service.upload_batch("GE", uploads).notices()

    assert [level for level, _ in notices] == ["error", "warning", "success"]
    assert "bad.jpg" in notices[0][1] and "quota exceeded" in notices[0][1]
    assert "notes.txt" in notices[1][1]
