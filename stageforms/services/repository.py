"""
Typed repository over the flat key-value namespace.

Two backends store raw JSON text with a revision counter:

    SqlKeyValueBackend      ``kv_documents`` table via Flask-SQLAlchemy
    MemoryKeyValueBackend   plain dict, used by tests and the ``memory`` store

``FormRepository`` sits on top and is what the stores receive. One
repository instance is one editor session: every document it reads is cached
with the revision it was read at, and writes are rejected with
ConflictError when another session saved the same key in between.

Writes that must land together go through ``batch()``: every queued
document is checked against its read revision and all of them are stored in
one backend call, or none is.

Keys:
    projectTypes                              -> list[ProjectCategory]
    formVersions_<categoryId>                 -> list[FormVersion]
    stepFormVersions_<categoryId>_<stepId>    -> list[RegistrationVersion]
    registrationFormVersions_<categoryId>     -> list[RegistrationVersion]
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from typing import Any, Protocol

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError

from stageforms.core.exceptions import ConflictError, NotFoundError, StorageCorruptError
from stageforms.models import db
from stageforms.models.form_schema import FormVersion, ProjectCategory, RegistrationVersion
from stageforms.models.kv_store import KeyValueDocument

logger = logging.getLogger(__name__)

CATEGORIES_KEY = "projectTypes"


def versions_key(category_id: str) -> str:
    return f"formVersions_{category_id}"


def step_versions_key(category_id: str, step_id: str) -> str:
    return f"stepFormVersions_{category_id}_{step_id}"


def registration_versions_key(category_id: str) -> str:
    return f"registrationFormVersions_{category_id}"


# ──────────────────────────────────────────────────────────────────────────────
# Backends
# ──────────────────────────────────────────────────────────────────────────────

class KeyValueBackend(Protocol):
    """Raw storage: ``read`` returns (text, revision); revision 0 means absent."""

    def read(self, key: str) -> tuple[str | None, int]:
        ...

    def write(self, key: str, raw: str, expected_revision: int) -> int:
        """Store ``raw`` if the stored revision equals ``expected_revision``.

        Returns the new revision. Raises ConflictError otherwise.
        """
        ...

    def write_many(self, writes: dict[str, tuple[str, int]]) -> dict[str, int]:
        """All-or-nothing ``write`` of ``{key: (raw, expected_revision)}``."""
        ...


class SqlKeyValueBackend:
    """Key-value documents persisted in the ``kv_documents`` table.

    The revision check and the update are one conditional UPDATE, so two
    processes holding the same revision cannot both succeed.
    """

    @staticmethod
    def _stored_revision(key: str) -> int:
        revision = db.session.execute(
            select(KeyValueDocument.revision).where(KeyValueDocument.key == key)
        ).scalar()
        return revision or 0

    def _write_one(self, key: str, raw: str, expected_revision: int) -> int:
        if expected_revision == 0:
            try:
                db.session.execute(insert(KeyValueDocument).values(key=key, value=raw, revision=1))
            except IntegrityError:
                db.session.rollback()
                raise ConflictError(key, 0, self._stored_revision(key)) from None
            return 1

        result = db.session.execute(
            update(KeyValueDocument)
            .where(
                KeyValueDocument.key == key,
                KeyValueDocument.revision == expected_revision,
            )
            .values(value=raw, revision=expected_revision + 1)
        )
        if result.rowcount != 1:
            raise ConflictError(key, expected_revision, self._stored_revision(key))
        return expected_revision + 1

    def read(self, key: str) -> tuple[str | None, int]:
        row = db.session.execute(
            select(KeyValueDocument.value, KeyValueDocument.revision)
            .where(KeyValueDocument.key == key)
        ).first()
        if row is None:
            return None, 0
        return row.value, row.revision

    def write(self, key: str, raw: str, expected_revision: int) -> int:
        return self.write_many({key: (raw, expected_revision)})[key]

    def write_many(self, writes: dict[str, tuple[str, int]]) -> dict[str, int]:
        revisions = {}
        try:
            for key, (raw, expected_revision) in writes.items():
                revisions[key] = self._write_one(key, raw, expected_revision)
        except ConflictError:
            db.session.rollback()
            raise
        db.session.commit()
        return revisions


class MemoryKeyValueBackend:
    """Dict-backed documents; shared between repositories to model several sessions."""

    def __init__(self):
        self._store: dict[str, tuple[str, int]] = {}

    def read(self, key: str) -> tuple[str | None, int]:
        raw, revision = self._store.get(key, (None, 0))
        return raw, revision

    def write(self, key: str, raw: str, expected_revision: int) -> int:
        return self.write_many({key: (raw, expected_revision)})[key]

    def write_many(self, writes: dict[str, tuple[str, int]]) -> dict[str, int]:
        for key, (_, expected_revision) in writes.items():
            _, actual = self._store.get(key, (None, 0))
            if actual != expected_revision:
                raise ConflictError(key, expected_revision, actual)
        revisions = {}
        for key, (raw, expected_revision) in writes.items():
            revisions[key] = expected_revision + 1
            self._store[key] = (raw, revisions[key])
        return revisions


# ──────────────────────────────────────────────────────────────────────────────
# Typed repository
# ──────────────────────────────────────────────────────────────────────────────

class FormRepository:
    """Typed get/put for categories (with embedded stages) and form versions."""

    def __init__(self, backend: KeyValueBackend):
        self._backend = backend
        self._documents: dict[str, tuple[list[Any], int]] = {}
        # key -> cache entry as it was before the batch queued a write
        self._pending: dict[str, tuple[list[Any], int]] | None = None

    # ── Raw document cache ───────────────────────────────────────────────

    def _load(self, key: str) -> list[Any]:
        if key not in self._documents:
            raw, revision = self._backend.read(key)
            self._documents[key] = (self._decode(key, raw), revision)
        return self._documents[key][0]

    def _store(self, key: str, items: list[dict]) -> None:
        self._load(key)
        if self._pending is not None:
            self._pending.setdefault(key, self._documents[key])
            self._documents[key] = (items, self._documents[key][1])
            return
        _, revision = self._documents[key]
        try:
            new_revision = self._backend.write(key, json.dumps(items), revision)
        except ConflictError:
            logger.warning("Write conflict on %s (read revision %s)", key, revision)
            raise
        self._documents[key] = (items, new_revision)

    @contextmanager
    def batch(self):
        """Queue every save made inside the block and store them together.

        Nothing reaches the backend if the block raises or any queued
        document was changed by another session since it was read.
        """
        if self._pending is not None:
            yield self
            return
        self._pending = {}
        try:
            yield self
            writes = {
                key: (json.dumps(self._documents[key][0]), self._documents[key][1])
                for key in self._pending
            }
            if writes:
                try:
                    revisions = self._backend.write_many(writes)
                except ConflictError as exc:
                    logger.warning(
                        "Write conflict on %s (read revision %s); batch of %s discarded",
                        exc.key, exc.expected, len(writes),
                    )
                    raise
                for key, revision in revisions.items():
                    self._documents[key] = (self._documents[key][0], revision)
        except BaseException:
            self._documents.update(self._pending)
            raise
        finally:
            self._pending = None

    @staticmethod
    def _corrupt(key: str, reason: str) -> list[Any]:
        logger.warning("%s; falling back to an empty collection", StorageCorruptError(key, reason))
        return []

    @classmethod
    def _decode(cls, key: str, raw: str | None) -> list[Any]:
        if raw is None:
            return []
        try:
            value = json.loads(raw)
        except ValueError as exc:
            return cls._corrupt(key, str(exc))
        if value is None:
            return []
        if not isinstance(value, list):
            return cls._corrupt(key, f"expected a list, got {type(value).__name__}")
        return value

    def _parse(self, key: str, parser, items: list[Any]) -> list:
        try:
            return [parser(item) for item in items]
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            return self._corrupt(key, f"malformed record: {exc!r}")

    def refresh(self) -> None:
        """Forget everything read so far; the next read sees the latest revisions."""
        self._documents.clear()

    def revision(self, key: str) -> int:
        """Revision this session last read or wrote for ``key``."""
        self._load(key)
        return self._documents[key][1]

    # ── Categories ───────────────────────────────────────────────────────

    def load_categories(self) -> list[ProjectCategory]:
        return self._parse(CATEGORIES_KEY, ProjectCategory.from_dict, self._load(CATEGORIES_KEY))

    def save_categories(self, categories: list[ProjectCategory]) -> None:
        self._store(CATEGORIES_KEY, [c.to_dict() for c in categories])

    def find_category(self, category_id: str) -> ProjectCategory | None:
        return next((c for c in self.load_categories() if c.id == str(category_id)), None)

    def get_category(self, category_id: str) -> ProjectCategory:
        category = self.find_category(category_id)
        if category is None:
            raise NotFoundError("ProjectCategory", str(category_id))
        return category

    def put_category(self, category: ProjectCategory) -> None:
        """Insert or replace one category, keeping the others as read."""
        categories = self.load_categories()
        for index, existing in enumerate(categories):
            if existing.id == category.id:
                categories[index] = category
                break
        else:
            categories.append(category)
        self.save_categories(categories)

    # ── Form versions ────────────────────────────────────────────────────

    def load_versions(self, category_id: str) -> list[FormVersion]:
        key = versions_key(category_id)
        return self._parse(key, FormVersion.from_dict, self._load(key))

    def save_versions(self, category_id: str, versions: list[FormVersion]) -> None:
        self._store(versions_key(category_id), [v.to_dict() for v in versions])

    # ── Registration versions ────────────────────────────────────────────

    def load_step_versions(self, category_id: str, step_id: str) -> list[RegistrationVersion]:
        key = step_versions_key(category_id, step_id)
        return self._parse(key, RegistrationVersion.from_dict, self._load(key))

    def save_step_versions(
        self, category_id: str, step_id: str, versions: list[RegistrationVersion]
    ) -> None:
        self._store(step_versions_key(category_id, step_id), [v.to_dict() for v in versions])

    def load_registration_versions(self, category_id: str) -> list[RegistrationVersion]:
        key = registration_versions_key(category_id)
        return self._parse(key, RegistrationVersion.from_dict, self._load(key))

    def save_registration_versions(
        self, category_id: str, versions: list[RegistrationVersion]
    ) -> None:
        self._store(registration_versions_key(category_id), [v.to_dict() for v in versions])
