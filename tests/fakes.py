# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-memory test doubles for the document store and the identity backend.

FakeDocumentStore implements the DocumentStore primitives over dicts so
the shared degrade policy in DocumentStore runs unchanged. Failures are
injected per (operation, collection).

FakeIdentityBackend is an httpx.MockTransport handler speaking the
Identity Toolkit and callable-function wire formats.
"""

import json
from collections import defaultdict
from typing import Any

import httpx

from src.infrastructure.firestore import (
    DELETE_FIELD,
    AggregationUnavailableError,
    DocumentExistsError,
    DocumentNotFoundError,
    DocumentStore,
    IndexRequiredError,
)
from src.models.query import Filter, FilterOperator, Ordering, SortDirection

OPERATORS = {
    FilterOperator.EQ: lambda value, expected: value == expected,
    FilterOperator.NE: lambda value, expected: value != expected,
    FilterOperator.LT: lambda value, expected: value is not None and value < expected,
    FilterOperator.LTE: lambda value, expected: value is not None and value <= expected,
    FilterOperator.GT: lambda value, expected: value is not None and value > expected,
    FilterOperator.GTE: lambda value, expected: value is not None and value >= expected,
    FilterOperator.IN: lambda value, expected: value in expected,
    FilterOperator.NOT_IN: lambda value, expected: value not in expected,
    FilterOperator.ARRAY_CONTAINS: lambda value, expected: expected in (value or []),
    FilterOperator.ARRAY_CONTAINS_ANY: lambda value, expected: bool(set(value or []) & set(expected)),
}


class FakeClock:
    """Settable clock for cache expiry tests."""

    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeDocumentStore(DocumentStore):
    """Dict-backed document store.

    Attributes:
        collections: Documents by collection and id (without ``id``).
        calls: (operation, collection) of every primitive call.
        missing_indexes: Collections whose ordered queries need an index.
        aggregation_available: Whether count aggregates work.
    """

    def __init__(self, default_limit: int = 50) -> None:
        super().__init__(default_limit=default_limit)
        self.collections: dict[str, dict[str, dict[str, Any]]] = defaultdict(dict)
        self.calls: list[tuple[str, str]] = []
        self.missing_indexes: set[str] = set()
        self.aggregation_available = True
        self._failures: dict[tuple[str, str], Exception] = {}
        self._ticks = 0
        self._ids = 0

    # ========== Test helpers ==========

    def seed(self, collection: str, document_id: str, data: dict[str, Any]) -> None:
        """Insert a document directly, stamping timestamps when absent."""
        document = dict(data)
        if "createdAt" not in document:
            document["createdAt"] = document["updatedAt"] = self.server_timestamp()
        self.collections[collection][document_id] = document

    def fail(self, operation: str, collection: str, error: Exception) -> None:
        """Make every ``operation`` on ``collection`` raise ``error``."""
        self._failures[(operation, collection)] = error

    def calls_to(self, operation: str, collection: str | None = None) -> int:
        return sum(
            1
            for op, name in self.calls
            if op == operation and (collection is None or name == collection)
        )

    def document(self, collection: str, document_id: str) -> dict[str, Any] | None:
        return self.collections[collection].get(document_id)

    def _enter(self, operation: str, collection: str) -> None:
        self.calls.append((operation, collection))
        error = self._failures.get((operation, collection))
        if error is not None:
            raise error

    def _matching(self, collection: str, filters: tuple[Filter, ...]) -> list[dict[str, Any]]:
        return [
            {"id": document_id, **document}
            for document_id, document in self.collections[collection].items()
            if all(OPERATORS[item.operator](document.get(item.field), item.value) for item in filters)
        ]

    @staticmethod
    def _apply(document: dict[str, Any], payload: dict[str, Any]) -> None:
        for key, value in payload.items():
            if value is DELETE_FIELD:
                document.pop(key, None)
            else:
                document[key] = value

    # ========== Primitives ==========

    def server_timestamp(self) -> Any:
        self._ticks += 1
        return self._ticks

    async def _run_query(
        self,
        collection: str,
        filters: tuple[Filter, ...],
        ordering: Ordering | None,
        limit: int | None,
        start_after: Any,
    ) -> list[dict[str, Any]]:
        self._enter("query", collection)
        if ordering is not None and collection in self.missing_indexes:
            raise IndexRequiredError(f"Index required for {collection}", collection)

        documents = self._matching(collection, filters)
        if ordering is not None:
            reverse = ordering.direction is SortDirection.DESC
            documents = [doc for doc in documents if doc.get(ordering.field) is not None]
            documents.sort(key=lambda doc: doc[ordering.field], reverse=reverse)
            if start_after is not None:
                documents = [
                    doc
                    for doc in documents
                    if (doc[ordering.field] < start_after if reverse else doc[ordering.field] > start_after)
                ]
        if limit is not None:
            documents = documents[:limit]
        return documents

    async def _run_count(self, collection: str, filters: tuple[Filter, ...]) -> int:
        self._enter("count", collection)
        if not self.aggregation_available:
            raise AggregationUnavailableError("Aggregation unavailable", collection)
        return len(self._matching(collection, filters))

    async def _get(self, collection: str, document_id: str) -> dict[str, Any]:
        self._enter("get", collection)
        document = self.collections[collection].get(document_id)
        if document is None:
            raise DocumentNotFoundError(f"{collection}/{document_id} not found", collection)
        return {"id": document_id, **document}

    async def _create(
        self,
        collection: str,
        payload: dict[str, Any],
        document_id: str | None,
    ) -> str:
        self._enter("create", collection)
        if document_id is None:
            self._ids += 1
            document_id = f"{collection}-{self._ids}"
        elif document_id in self.collections[collection]:
            raise DocumentExistsError(f"{collection}/{document_id} exists", collection)

        document: dict[str, Any] = {}
        self._apply(document, payload)
        self.collections[collection][document_id] = document
        return document_id

    async def _set(
        self,
        collection: str,
        document_id: str,
        payload: dict[str, Any],
        merge: bool,
    ) -> None:
        self._enter("set", collection)
        document = self.collections[collection].get(document_id) if merge else None
        document = dict(document or {})
        self._apply(document, payload)
        self.collections[collection][document_id] = document

    async def _update(self, collection: str, document_id: str, payload: dict[str, Any]) -> None:
        self._enter("update", collection)
        document = self.collections[collection].get(document_id)
        if document is None:
            raise DocumentNotFoundError(f"{collection}/{document_id} not found", collection)
        self._apply(document, payload)

    async def _delete(self, collection: str, document_id: str) -> None:
        self._enter("delete", collection)
        self.collections[collection].pop(document_id, None)


class FakeIdentityBackend:
    """Identity Toolkit and callable-function endpoints for MockTransport.

    Attributes:
        accounts: Accounts by email (``uid``, ``password``, ``displayName``).
        requests: Every request received, in order.
        signup_error: Provider error code returned by signUp, if set.
        function_responses: Canned (status, body) per function name.
    """

    def __init__(self) -> None:
        self.accounts: dict[str, dict[str, Any]] = {}
        self.requests: list[httpx.Request] = []
        self.signup_error: str | None = None
        self.function_responses: dict[str, tuple[int, Any]] = {}
        self._ids = 0

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport())

    def add_account(self, email: str, password: str, uid: str | None = None) -> str:
        if uid is None:
            self._ids += 1
            uid = f"uid-{self._ids}"
        self.accounts[email] = {"uid": uid, "password": password, "displayName": ""}
        return uid

    def calls_to(self, suffix: str) -> int:
        return sum(1 for request in self.requests if request.url.path.endswith(suffix))

    def bodies(self, suffix: str) -> list[dict[str, Any]]:
        return [
            json.loads(request.content)
            for request in self.requests
            if request.url.path.endswith(suffix)
        ]

    @staticmethod
    def _error(status: int, message: str) -> httpx.Response:
        return httpx.Response(status, json={"error": {"code": status, "message": message}})

    def _session(self, email: str) -> dict[str, Any]:
        account = self.accounts[email]
        return {
            "localId": account["uid"],
            "email": email,
            "idToken": f"token-{account['uid']}",
            "refreshToken": f"refresh-{account['uid']}",
            "displayName": account["displayName"],
        }

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        body = json.loads(request.content) if request.content else {}

        if path.endswith("accounts:signUp"):
            if self.signup_error:
                return self._error(400, self.signup_error)
            if body["email"] in self.accounts:
                return self._error(400, "EMAIL_EXISTS")
            self.add_account(body["email"], body["password"])
            return httpx.Response(200, json=self._session(body["email"]))

        if path.endswith("accounts:signInWithPassword"):
            account = self.accounts.get(body["email"])
            if account is None or account["password"] != body["password"]:
                return self._error(400, "INVALID_LOGIN_CREDENTIALS")
            return httpx.Response(200, json=self._session(body["email"]))

        if path.endswith("accounts:update"):
            for email, account in self.accounts.items():
                if body["idToken"] == f"token-{account['uid']}":
                    account["displayName"] = body["displayName"]
                    return httpx.Response(200, json=self._session(email))
            return self._error(400, "INVALID_ID_TOKEN")

        name = path.rsplit("/", 1)[-1]
        if name in self.function_responses:
            status, payload = self.function_responses[name]
            return httpx.Response(status, json=payload)
        return httpx.Response(404, text="Not Found")
