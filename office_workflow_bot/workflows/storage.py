"""Document repositories backing every workflow."""

from __future__ import annotations

import re
from datetime import UTC, date, datetime
from typing import Callable, Generic, List, Type, TypeVar
from uuid import uuid4

from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from office_workflow_bot.db import session_scope
from office_workflow_bot.models import ConflictError, Document, NotFoundError

from .documents import AttendanceRecord, BudgetRequest, LeaveRequest
from .requests import canonical_json

T = TypeVar("T", bound=BaseModel)

_DOCUMENT_ID_RE = re.compile(r"^[0-9a-f]{32}$")


class DuplicateKeyError(ConflictError):
    """Raised when a document with the same natural key already exists."""

    default_message = "A matching record already exists."


def new_document_id() -> str:
    return uuid4().hex


class DocumentRepository(Generic[T]):
    """Create, fetch and fully replace documents of one collection.

    Every replace is conditional on the version that was loaded, so a
    concurrent writer surfaces as ``ConflictError`` instead of a silent
    overwrite.
    """

    def __init__(
        self,
        *,
        collection: str,
        model: Type[T],
        natural_key: Callable[[T], str | None] | None = None,
        owner: Callable[[T], str | None] | None = None,
        day: Callable[[T], date | None] | None = None,
    ) -> None:
        self.collection = collection
        self._model = model
        self._natural_key = natural_key or (lambda entity: None)
        self._owner = owner or (lambda entity: None)
        self._day = day or (lambda entity: None)

    def _serialise(self, entity: T) -> str:
        return canonical_json(entity.model_dump(mode="json"))

    def _load(self, row: Document) -> T:
        entity = self._model.model_validate_json(row.payload_json)
        entity.version = row.version
        return entity

    def _day_value(self, entity: T) -> str | None:
        value = self._day(entity)
        return value.isoformat() if value else None

    def create(self, entity: T) -> T:
        """Persist a new document, assigning its identifier and timestamps."""

        now = datetime.now(UTC)
        entity.id = new_document_id()
        entity.created_at = now
        entity.updated_at = now
        entity.version = 1

        try:
            with session_scope() as session:
                session.add(
                    Document(
                        id=entity.id,
                        collection=self.collection,
                        natural_key=self._natural_key(entity),
                        owner_id=self._owner(entity),
                        day=self._day_value(entity),
                        payload_json=self._serialise(entity),
                        version=1,
                        created_at=now,
                        updated_at=now,
                    )
                )
        except IntegrityError as exc:
            raise DuplicateKeyError() from exc
        return entity

    def get(self, document_id: str) -> T:
        """Return the document or raise ``NotFoundError`` for unknown or malformed ids."""

        if not isinstance(document_id, str) or not _DOCUMENT_ID_RE.match(document_id):
            raise NotFoundError()

        with session_scope() as session:
            row = session.get(Document, document_id)
            if row is None or row.collection != self.collection:
                raise NotFoundError()
            return self._load(row)

    def replace(self, entity: T) -> T:
        """Replace the stored document with *entity* if nobody else wrote first."""

        now = datetime.now(UTC)
        previous_updated_at = entity.updated_at
        entity.updated_at = now
        with session_scope() as session:
            result = session.execute(
                update(Document)
                .where(
                    Document.id == entity.id,
                    Document.collection == self.collection,
                    Document.version == entity.version,
                )
                .values(
                    payload_json=self._serialise(entity),
                    owner_id=self._owner(entity),
                    day=self._day_value(entity),
                    version=entity.version + 1,
                    updated_at=now,
                )
            )
            if result.rowcount != 1:
                entity.updated_at = previous_updated_at
                raise ConflictError(f"Document {entity.id} was updated concurrently.")

        entity.version += 1
        return entity

    def find_by_key(self, natural_key: str) -> T | None:
        with session_scope() as session:
            row = session.execute(
                select(Document).where(
                    Document.collection == self.collection,
                    Document.natural_key == natural_key,
                )
            ).scalar_one_or_none()
            return self._load(row) if row is not None else None

    def list_between(self, start: date, end: date, *, owner_id: str | None = None) -> List[T]:
        """Return documents whose day falls inside ``[start, end]``."""

        stmt = select(Document).where(
            Document.collection == self.collection,
            Document.day >= start.isoformat(),
            Document.day <= end.isoformat(),
        )
        if owner_id:
            stmt = stmt.where(Document.owner_id == owner_id)
        stmt = stmt.order_by(Document.day, Document.created_at)

        with session_scope() as session:
            return [self._load(row) for row in session.execute(stmt).scalars()]

    def list_for_owner(self, owner_id: str) -> List[T]:
        stmt = (
            select(Document)
            .where(Document.collection == self.collection, Document.owner_id == owner_id)
            .order_by(Document.created_at)
        )
        with session_scope() as session:
            return [self._load(row) for row in session.execute(stmt).scalars()]


def budget_repository() -> DocumentRepository[BudgetRequest]:
    return DocumentRepository(
        collection="budget_requests",
        model=BudgetRequest,
        owner=lambda request: request.created_by,
    )


def leave_repository() -> DocumentRepository[LeaveRequest]:
    return DocumentRepository(
        collection="leave_requests",
        model=LeaveRequest,
        owner=lambda request: request.user_id,
        day=lambda request: min(request.dates) if request.dates else None,
    )


def attendance_repository() -> DocumentRepository[AttendanceRecord]:
    return DocumentRepository(
        collection="attendance",
        model=AttendanceRecord,
        natural_key=lambda record: record.natural_key,
        owner=lambda record: record.user_id,
        day=lambda record: record.day,
    )
