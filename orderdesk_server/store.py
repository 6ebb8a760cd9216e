"""JSON-file backed document store."""

import contextlib
import copy
import json
import logging
import os
import tempfile
import uuid
from datetime import datetime
from typing import Any, Optional

from .errors import StoreError

logger = logging.getLogger(__name__)

USERS = "users"
ORDERS = "orders"
ACCOUNTS = "accounts"


class JsonDocumentStore:
    """
    Collections of JSON documents keyed by document ID.

    Documents are held in memory. When ``path`` is set, the whole store is
    loaded from that file on startup and written back after every change.
    Reads and writes copy documents, so callers never share containers with
    the store.
    """

    def __init__(self, path: Optional[str] = None) -> None:
        """
        Initialize the document store.

        Args:
            path: JSON file to persist to. None keeps everything in memory.
        """
        self.path = path
        self._collections: dict[str, dict[str, dict[str, Any]]] = self._load()

    def _load(self) -> dict[str, dict[str, dict[str, Any]]]:
        """Load collections from file if it exists. An unreadable file is moved aside, never overwritten."""
        if not self.path or not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            self._quarantine(f"Could not parse document store {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            self._quarantine(f"Document store {self.path} does not hold a JSON object")
            return {}
        logger.info(f"Loaded document store from {self.path}")
        return data

    def _quarantine(self, reason: str) -> None:
        """Rename the current store file so the next save cannot destroy it."""
        backup = f"{self.path}.corrupt-{datetime.now():%Y%m%d%H%M%S}"
        os.replace(self.path, backup)
        logger.error(f"{reason}. Moved it to {backup} and starting with an empty store")

    def _save(self) -> None:
        """Write collections to file, replacing it in one step."""
        if not self.path:
            return
        directory = os.path.dirname(os.path.abspath(self.path))
        # mkstemp creates the file with mode 0600
        fd, tmp_path = tempfile.mkstemp(prefix=".orderdesk-", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(self._collections, f, indent=2, default=str)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp_path)
            raise

    # Generic document access

    def get_document(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        document = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(document) if document is not None else None

    def set_document(self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False) -> None:
        documents = self._collections.setdefault(collection, {})
        if merge and doc_id in documents:
            documents[doc_id].update(copy.deepcopy(data))
        else:
            documents[doc_id] = copy.deepcopy(data)
        self._save()

    def update_document(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Update fields of an existing document. Raises StoreError if it does not exist."""
        documents = self._collections.get(collection, {})
        if doc_id not in documents:
            raise StoreError(f"No document {collection}/{doc_id}")
        documents[doc_id].update(copy.deepcopy(data))
        self._save()

    def delete_document(self, collection: str, doc_id: str) -> None:
        if self._collections.get(collection, {}).pop(doc_id, None) is not None:
            self._save()

    def add_document(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex[:20]
        self.set_document(collection, doc_id, data)
        return doc_id

    def query(self, collection: str, field: Optional[str] = None, value: Any = None) -> list[tuple[str, dict[str, Any]]]:
        """Documents of ``collection`` whose ``field`` equals ``value`` (all documents without a field)."""
        return [
            (doc_id, copy.deepcopy(document))
            for doc_id, document in self._collections.get(collection, {}).items()
            if field is None or document.get(field) == value
        ]

    # User documents

    async def is_user_admin(self, user_id: str) -> bool:
        data = self.get_document(USERS, user_id)
        if data is None:
            return False
        return data.get("isAdmin") is True or data.get("role") == "admin"

    async def get_user_data(self, user_id: str) -> Optional[dict[str, Any]]:
        return self.get_document(USERS, user_id)

    async def set_user_data(self, user_id: str, data: dict[str, Any], merge: bool = False) -> None:
        self.set_document(USERS, user_id, data, merge=merge)

    async def update_user_data(self, user_id: str, data: dict[str, Any]) -> None:
        self.update_document(USERS, user_id, data)

    async def delete_user_data(self, user_id: str) -> None:
        self.delete_document(USERS, user_id)

    # Orders

    async def get_orders_for_user(self, user_id: str) -> list[tuple[str, dict[str, Any]]]:
        return self.query(ORDERS, "userId", user_id)

    async def get_all_orders(self) -> list[tuple[str, dict[str, Any]]]:
        return self.query(ORDERS)

    async def get_order(self, order_id: str) -> Optional[dict[str, Any]]:
        return self.get_document(ORDERS, order_id)

    async def add_order(self, record: dict[str, Any]) -> str:
        return self.add_document(ORDERS, record)

    async def update_order(self, order_id: str, fields: dict[str, Any]) -> None:
        self.update_document(ORDERS, order_id, fields)

    async def delete_order(self, order_id: str) -> None:
        self.delete_document(ORDERS, order_id)
