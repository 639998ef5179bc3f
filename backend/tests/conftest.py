"""
backend/tests/conftest.py

Purpose:
    Shared pytest bootstrap: import paths for the backend package and an
    in-memory stand-in for the Motor database handle used by the services.
    The fake covers the query and update operators the services rely on and
    yields to the event loop on reads and atomic updates, so concurrent
    coroutines interleave the way they do against a real server.
"""

from __future__ import annotations

import asyncio
import copy
import re
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

_THIS_FILE = Path(__file__).resolve()
_BACKEND_DIR = _THIS_FILE.parents[1]
_REPO_ROOT = _THIS_FILE.parents[2]

for candidate in (str(_BACKEND_DIR), str(_REPO_ROOT)):
    if candidate not in sys.path:
        sys.path.insert(0, candidate)


_MISSING = object()


def _lookup(doc: dict, dotted: str) -> Any:
    value: Any = doc
    for part in dotted.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _compare(value: Any, op: str, arg: Any) -> bool:
    if value is _MISSING or value is None:
        return False
    if op == "$lt":
        return value < arg
    if op == "$lte":
        return value <= arg
    if op == "$gt":
        return value > arg
    return value >= arg


def _match_condition(value: Any, cond: Any) -> bool:
    if isinstance(cond, dict) and cond and all(str(k).startswith("$") for k in cond):
        for op, arg in cond.items():
            plain = None if value is _MISSING else value
            if op == "$in":
                ok = any(v in arg for v in plain) if isinstance(plain, list) else plain in arg
            elif op == "$nin":
                ok = not (any(v in arg for v in plain) if isinstance(plain, list) else plain in arg)
            elif op == "$ne":
                ok = arg not in plain if isinstance(plain, list) else plain != arg
            elif op in ("$lt", "$lte", "$gt", "$gte"):
                ok = _compare(value, op, arg)
            elif op == "$exists":
                ok = (value is not _MISSING) == bool(arg)
            elif op == "$regex":
                ok = isinstance(plain, str) and re.search(arg, plain) is not None
            else:
                raise NotImplementedError(op)
            if not ok:
                return False
        return True
    if value is _MISSING:
        return cond is None
    if isinstance(value, list) and not isinstance(cond, list):
        return cond in value
    return value == cond


def matches_query(doc: dict, query: dict) -> bool:
    for key, cond in query.items():
        if key == "$or":
            if not any(matches_query(doc, clause) for clause in cond):
                return False
        elif key == "$and":
            if not all(matches_query(doc, clause) for clause in cond):
                return False
        elif not _match_condition(_lookup(doc, key), cond):
            return False
    return True


def _apply_update(doc: dict, update: dict, *, inserting: bool = False) -> None:
    for op, fields in update.items():
        if op == "$set":
            doc.update(copy.deepcopy(fields))
        elif op == "$inc":
            for key, amount in fields.items():
                doc[key] = doc.get(key, 0) + amount
        elif op == "$setOnInsert":
            if inserting:
                doc.update(copy.deepcopy(fields))
        elif op == "$unset":
            for key in fields:
                doc.pop(key, None)
        else:
            raise NotImplementedError(op)


def _sort_key(value: Any):
    return (0, 0) if value is None or value is _MISSING else (1, value)


class FakeCursor:
    def __init__(self, docs: list[dict]):
        self._docs = docs
        self._sort: list[tuple[str, int]] = []
        self._skip = 0
        self._limit: int | None = None

    def sort(self, key, direction: int = 1):
        if isinstance(key, list):
            self._sort.extend((k, int(d)) for k, d in key)
        else:
            self._sort.append((key, int(direction)))
        return self

    def skip(self, value: int):
        self._skip = int(value)
        return self

    def limit(self, value: int):
        self._limit = int(value) if value else None
        return self

    def _rows(self) -> list[dict]:
        rows = list(self._docs)
        for key, direction in reversed(self._sort):
            rows.sort(key=lambda d: _sort_key(_lookup(d, key)), reverse=direction < 0)
        rows = rows[self._skip:]
        if self._limit is not None:
            rows = rows[: self._limit]
        return [copy.deepcopy(r) for r in rows]

    async def to_list(self, length: int | None = None):
        await asyncio.sleep(0)
        rows = self._rows()
        return rows if length is None else rows[:length]

    def __aiter__(self):
        self._iter = iter(self._rows())
        return self

    async def __anext__(self):
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration


class FakeCollection:
    def __init__(self, name: str, unique: tuple[tuple[str, ...], ...] = ()):
        self.name = name
        self.docs: list[dict] = []
        self.unique = unique
        # Awaited before an atomic update is evaluated; lets tests inject a racing writer.
        self.before_find_one_and_update = None

    def _check_unique(self, candidate: dict, *, ignore: dict | None = None) -> None:
        for existing in self.docs:
            if existing is ignore:
                continue
            if existing["_id"] == candidate["_id"]:
                raise DuplicateKeyError(f"E11000 duplicate key error collection: {self.name} _id", 11000)
            for fields in self.unique:
                if all(_lookup(existing, f) == _lookup(candidate, f) for f in fields) and all(
                    _lookup(candidate, f) is not _MISSING for f in fields
                ):
                    raise DuplicateKeyError(
                        f"E11000 duplicate key error collection: {self.name} index: {'_'.join(fields)}",
                        11000,
                    )

    def _find(self, query: dict) -> list[dict]:
        return [d for d in self.docs if matches_query(d, query or {})]

    async def create_index(self, *args, **kwargs):
        return "ok"

    async def insert_one(self, doc: dict):
        doc.setdefault("_id", ObjectId())
        stored = copy.deepcopy(doc)
        self._check_unique(stored)
        self.docs.append(stored)
        return SimpleNamespace(inserted_id=doc["_id"], acknowledged=True)

    async def insert_many(self, docs: list[dict]):
        ids = []
        for doc in docs:
            result = await self.insert_one(doc)
            ids.append(result.inserted_id)
        return SimpleNamespace(inserted_ids=ids, acknowledged=True)

    def find(self, query: dict | None = None, projection: dict | None = None):
        return FakeCursor(self._find(query or {}))

    async def find_one(self, query: dict | None = None, projection: dict | None = None, sort=None):
        await asyncio.sleep(0)
        cursor = FakeCursor(self._find(query or {}))
        if sort:
            cursor.sort(sort)
        rows = cursor._rows()
        return rows[0] if rows else None

    async def count_documents(self, query: dict):
        return len(self._find(query))

    def _upsert(self, query: dict, update: dict) -> dict:
        doc = {k: copy.deepcopy(v) for k, v in query.items() if not k.startswith("$") and not isinstance(v, dict)}
        doc.setdefault("_id", ObjectId())
        _apply_update(doc, update, inserting=True)
        self._check_unique(doc)
        self.docs.append(doc)
        return doc

    def _update_doc(self, doc: dict, update: dict) -> None:
        staged = copy.deepcopy(doc)
        _apply_update(staged, update)
        self._check_unique(staged, ignore=doc)
        doc.clear()
        doc.update(staged)

    async def update_one(self, query: dict, update: dict, upsert: bool = False):
        found = self._find(query)
        if found:
            self._update_doc(found[0], update)
            return SimpleNamespace(matched_count=1, modified_count=1, upserted_id=None)
        if upsert:
            doc = self._upsert(query, update)
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=doc["_id"])
        return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)

    async def update_many(self, query: dict, update: dict, upsert: bool = False):
        found = self._find(query)
        for doc in found:
            self._update_doc(doc, update)
        return SimpleNamespace(matched_count=len(found), modified_count=len(found), upserted_id=None)

    async def find_one_and_update(
        self,
        query: dict,
        update: dict,
        projection: dict | None = None,
        return_document: bool = False,
        upsert: bool = False,
        sort=None,
    ):
        await asyncio.sleep(0)
        if self.before_find_one_and_update is not None:
            await self.before_find_one_and_update(query, update)
        found = self._find(query)
        if not found:
            if upsert:
                doc = self._upsert(query, update)
                return copy.deepcopy(doc) if return_document else None
            return None
        doc = found[0]
        before = copy.deepcopy(doc)
        self._update_doc(doc, update)
        return copy.deepcopy(doc) if return_document else before

    async def delete_one(self, query: dict):
        found = self._find(query)
        if found:
            self.docs.remove(found[0])
        return SimpleNamespace(deleted_count=1 if found else 0)

    async def delete_many(self, query: dict):
        found = self._find(query)
        for doc in found:
            self.docs.remove(doc)
        return SimpleNamespace(deleted_count=len(found))


_UNIQUE_INDEXES = {
    "teams": (("name",),),
    "rounds": (("championship_id", "round_number"),),
    "levels": (("level_number",),),
}


class FakeDB:
    def __init__(self):
        self._collections: dict[str, FakeCollection] = {}

    def __getattr__(self, name: str) -> FakeCollection:
        if name.startswith("_"):
            raise AttributeError(name)
        if name not in self._collections:
            self._collections[name] = FakeCollection(name, _UNIQUE_INDEXES.get(name, ()))
        return self._collections[name]

    def __getitem__(self, name: str) -> FakeCollection:
        return getattr(self, name)

    async def command(self, name: str):
        return {"ok": 1.0}


@pytest.fixture
def fake_db(monkeypatch):
    import golaco.database as _db

    db = FakeDB()
    monkeypatch.setattr(_db, "db", db)
    return db
