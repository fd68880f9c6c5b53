import pytest

from travelmap.errors import DocumentNotFoundError, PersistenceError
from travelmap.storage.document_store import ABSENT, JsonDocumentStore, sanitize


def test_sanitize_strips_absent_and_keeps_none():
    cleaned = sanitize(
        {
            "a": ABSENT,
            "b": None,
            "nested": {"c": ABSENT, "d": 1},
            "items": [ABSENT, {"e": ABSENT, "f": None}, 2],
        }
    )
    assert cleaned == {"b": None, "nested": {"d": 1}, "items": [{"f": None}, 2]}


def test_set_rejects_absent_values(documents):
    with pytest.raises(PersistenceError):
        documents.set("photos", "p1", {"caption": ABSENT})
    assert documents.get("photos", "p1") is None


def test_update_of_missing_document_raises(documents):
    with pytest.raises(DocumentNotFoundError) as excinfo:
        documents.update("photos", "missing", {"caption": "hi"})
    assert excinfo.value.doc_id == "missing"


def test_update_merges_fields_and_persists(tmp_path):
    store = JsonDocumentStore(tmp_path / "db")
    store.set("photos", "p1", {"caption": "", "faceTags": [], "countryIso": "GE"})
    store.update("photos", "p1", {"caption": "Tbilisi"})

    reopened = JsonDocumentStore(tmp_path / "db")
    assert reopened.get("photos", "p1") == {"caption": "Tbilisi", "faceTags": [], "countryIso": "GE"}
    assert reopened.collections() == ["photos"]


def test_reads_are_copies(documents):
    documents.set("trips", "config", {"visited": [{"iso2": "GE"}]})
    doc = documents.get("trips", "config")
    doc["visited"].append({"iso2": "TR"})
    assert documents.get("trips", "config") == {"visited": [{"iso2": "GE"}]}


def test_where_and_delete(documents):
    documents.set("photos", "a", {"countryIso": "GE"})
    documents.set("photos", "b", {"countryIso": "TR"})
    documents.set("photos", "c", {"countryIso": "GE"})

    assert sorted(d["countryIso"] for d in documents.where("photos", "countryIso", "GE")) == ["GE", "GE"]

    documents.delete("photos", "a")
    documents.delete("photos", "does-not-exist")
    assert len(documents.list("photos")) == 2
