from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List

from synapsebot.storage.errors import StorageError
from synapsebot.storage.file_store import FileStore


class DocumentRepo:
    """
    Base for repositories that keep all their records in one document.

    Subclasses set ``document_key`` and ``collections``; every collection
    listed there is guaranteed to exist (as a list, or a mapping for names in
    ``mapping_collections``) in the document handed to ``_edit`` blocks.
    """

    document_key: str = ""
    collections: tuple[str, ...] = ()
    mapping_collections: tuple[str, ...] = ()

    def __init__(self, store: FileStore, document_key: str | None = None) -> None:
        self.store = store
        if document_key:
            self.document_key = document_key

    def _empty(self) -> Dict[str, Any]:
        document: Dict[str, Any] = {}
        for name in self.collections:
            document[name] = {} if name in self.mapping_collections else []
        return document

    def _normalise(self, document: Any) -> Dict[str, Any]:
        if not isinstance(document, dict):
            raise StorageError(f"Document '{self.document_key}' is not a JSON object")
        for name in self.collections:
            expected = dict if name in self.mapping_collections else list
            if not isinstance(document.get(name), expected):
                document[name] = expected()
        return document

    async def _load(self) -> Dict[str, Any]:
        document = await self.store.read(self.document_key)
        if document is None:
            return self._empty()
        return self._normalise(document)

    @asynccontextmanager
    async def _edit(self) -> AsyncIterator[Dict[str, Any]]:
        async with self.store.edit(self.document_key, default=self._empty) as document:
            yield self._normalise(document)

    async def _collection(self, name: str) -> List[Dict[str, Any]]:
        document = await self._load()
        return [record for record in document[name] if isinstance(record, dict)]
