"""
In-memory stand-in for the Motor collections used by the services.
Supports the query operators the services emit: equality, $in, $nin, $ne,
$gt/$gte/$lt/$lte, $regex, $or, $and, and $expr with $regexMatch. No aggregate.
"""

import copy
import re
from types import SimpleNamespace


def _compare(value, op, arg, options=""):
    if op == "$options":
        return True
    if op == "$regex":
        flags = re.IGNORECASE if "i" in options else 0
        return value is not None and re.search(arg, str(value), flags) is not None
    if op == "$in":
        return value in arg
    if op == "$nin":
        return value not in arg
    if op == "$ne":
        return value != arg
    if value is None:
        return False
    if op == "$gt":
        return value > arg
    if op == "$gte":
        return value >= arg
    if op == "$lt":
        return value < arg
    if op == "$lte":
        return value <= arg
    raise NotImplementedError(op)


def _evaluate(doc, expr):
    """Aggregation expressions used by the search query: field paths, $concat, $ifNull, $regexMatch"""
    if isinstance(expr, str) and expr.startswith("$"):
        return doc.get(expr[1:])
    if not isinstance(expr, dict):
        return expr
    (op, arg), = expr.items()
    if op == "$concat":
        parts = [_evaluate(doc, a) for a in arg]
        return None if any(p is None for p in parts) else "".join(parts)
    if op == "$ifNull":
        value = _evaluate(doc, arg[0])
        return _evaluate(doc, arg[1]) if value is None else value
    if op == "$regexMatch":
        value = _evaluate(doc, arg["input"])
        flags = re.IGNORECASE if "i" in arg.get("options", "") else 0
        return isinstance(value, str) and re.search(arg["regex"], value, flags) is not None
    raise NotImplementedError(op)


def matches(doc, query):
    for key, condition in query.items():
        if key == "$or":
            if not any(matches(doc, q) for q in condition):
                return False
        elif key == "$and":
            if not all(matches(doc, q) for q in condition):
                return False
        elif key == "$expr":
            if not _evaluate(doc, condition):
                return False
        elif isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
            value = doc.get(key)
            options = condition.get("$options", "")
            if not all(_compare(value, op, arg, options) for op, arg in condition.items()):
                return False
        elif doc.get(key) != condition:
            return False
    return True


def _project(doc, projection):
    doc = copy.deepcopy(doc)
    if not projection:
        return doc
    included = [k for k, v in projection.items() if v and k != "_id"]
    if included:
        doc = {k: v for k, v in doc.items() if k in included or k == "_id"}
    for key, value in projection.items():
        if not value:
            doc.pop(key, None)
    return doc


class FakeCursor:
    def __init__(self, docs):
        self.docs = docs

    def sort(self, key, direction=None):
        spec = [(key, direction or 1)] if isinstance(key, str) else list(key)
        for field, order in reversed(spec):
            self.docs.sort(key=lambda d: (d.get(field) is not None, d.get(field) or ""), reverse=order == -1)
        return self

    def skip(self, n):
        self.docs = self.docs[n:]
        return self

    def limit(self, n):
        if n:
            self.docs = self.docs[:n]
        return self

    async def to_list(self, length=None):
        return self.docs[:length] if length else list(self.docs)


class FakeCollection:
    def __init__(self):
        self.docs = []

    def find(self, query=None, projection=None):
        return FakeCursor([_project(d, projection) for d in self.docs if matches(d, query or {})])

    async def find_one(self, query=None, projection=None):
        for doc in self.docs:
            if matches(doc, query or {}):
                return _project(doc, projection)
        return None

    async def insert_one(self, doc):
        self.docs.append(copy.deepcopy(doc))
        return SimpleNamespace(inserted_id=doc.get("_id", doc.get("id")))

    async def insert_many(self, docs):
        for doc in docs:
            await self.insert_one(doc)

    async def count_documents(self, query):
        return sum(1 for d in self.docs if matches(d, query))

    async def update_one(self, query, update, upsert=False):
        for doc in self.docs:
            if matches(doc, query):
                doc.update(copy.deepcopy(update.get("$set", {})))
                return SimpleNamespace(matched_count=1, modified_count=1, upserted_id=None)
        if upsert:
            doc = {k: v for k, v in query.items() if not isinstance(v, dict)}
            doc.update(copy.deepcopy(update.get("$setOnInsert", {})))
            doc.update(copy.deepcopy(update.get("$set", {})))
            self.docs.append(doc)
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=doc.get("id"))
        return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)

    async def update_many(self, query, update):
        hits = [d for d in self.docs if matches(d, query)]
        for doc in hits:
            doc.update(copy.deepcopy(update.get("$set", {})))
        return SimpleNamespace(matched_count=len(hits), modified_count=len(hits))

    async def delete_one(self, query):
        for i, doc in enumerate(self.docs):
            if matches(doc, query):
                del self.docs[i]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)


class FakeDB:
    def __init__(self):
        self._collections = {}

    def __getitem__(self, name):
        return self._collections.setdefault(name, FakeCollection())

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        return self[name]
