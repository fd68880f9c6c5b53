"""Exceptions shared by the storage and service layers."""


class TravelMapError(Exception):
    """Base class for application errors."""


class PersistenceError(TravelMapError):
    """A document write or blob operation failed."""


class DocumentNotFoundError(PersistenceError):
    """A partial update targeted a document that does not exist."""

    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(f"Document not found: {collection}/{doc_id}")
        self.collection = collection
        self.doc_id = doc_id
