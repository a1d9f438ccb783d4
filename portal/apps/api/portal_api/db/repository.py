"""Generic session-bound repository.

One implementation, instantiated per model::

    users = Repository(db, User)
    user = users.get_by_field("email", "alice@x.com")

Writes are flushed, not committed: the caller owns the transaction and
commits once its unit of work is complete. Constraint failures reported by
the store are translated into the domain taxonomy after the session has been
rolled back:

- unique constraint      → UniquenessViolation
- foreign key constraint → NotFoundError (referenced row missing)
- check constraint       → ValidationError
- anything else          → PersistenceError
"""

import logging
from typing import Any, Generic, Iterable, Optional, TypeVar

from sqlalchemy import ColumnElement, Select, delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from portal_api.db.models import Base
from portal_api.errors import (
    NotFoundError,
    PersistenceError,
    UniquenessViolation,
    ValidationError,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=Base)


def _constraint_name(exc: IntegrityError) -> Optional[str]:
    diag = getattr(exc.orig, "diag", None)
    return getattr(diag, "constraint_name", None)


def translate_integrity_error(exc: IntegrityError, model_name: str) -> Exception:
    """Map a driver IntegrityError onto the domain error taxonomy."""
    message = str(exc.orig).lower()
    constraint = _constraint_name(exc)

    if "unique" in message or "duplicate" in message:
        return UniquenessViolation(
            f"{model_name} violates a uniqueness constraint",
            constraint=constraint,
        )
    if "foreign key" in message:
        return NotFoundError(f"{model_name} references a row that does not exist")
    if "check constraint" in message:
        return ValidationError(f"{model_name} has a value outside the allowed set")
    return PersistenceError(f"{model_name} write rejected by the store")


class Repository(Generic[ModelT]):
    """Data access for a single ORM model."""

    def __init__(self, session: Session, model: type[ModelT]):
        self.session = session
        self.model = model

    # ── reads ────────────────────────────────────────────────────────────────

    def get(self, row_id: int) -> Optional[ModelT]:
        return self._read(lambda: self.session.get(self.model, row_id))

    def get_by_field(self, field: str, value: Any) -> Optional[ModelT]:
        """Return the first row whose ``field`` equals ``value``, or None."""
        column = self._column(field)
        stmt = select(self.model).where(column == value).limit(1)
        return self._read(lambda: self.session.scalars(stmt).first())

    def get_one_by_condition(self, *conditions: ColumnElement[bool]) -> Optional[ModelT]:
        stmt = select(self.model).where(*conditions).limit(1)
        return self._read(lambda: self.session.scalars(stmt).first())

    def get_all_by_condition(
        self,
        *conditions: ColumnElement[bool],
        limit: Optional[int] = None,
    ) -> list[ModelT]:
        stmt = select(self.model).where(*conditions).order_by(self.model.id)
        if limit is not None:
            stmt = stmt.limit(limit)
        return self._read(lambda: list(self.session.scalars(stmt).all()))

    def get_all(self) -> list[ModelT]:
        return self.get_all_by_condition()

    def select_rows(self, stmt: Select) -> list[ModelT]:
        """Run a caller-built select (joins across mapping tables)."""
        return self._read(lambda: list(self.session.scalars(stmt).unique().all()))

    # ── writes ───────────────────────────────────────────────────────────────

    def create(self, **values: Any) -> ModelT:
        """Insert one row and flush so constraint violations surface immediately."""
        instance = self.model(**values)
        self.session.add(instance)
        self._flush()
        return instance

    def create_many(self, rows: Iterable[dict[str, Any]]) -> list[ModelT]:
        """Insert several rows in one flush; all or nothing."""
        instances = [self.model(**values) for values in rows]
        self.session.add_all(instances)
        self._flush()
        return instances

    def update_one(self, instance: ModelT, updates: dict[str, Any]) -> ModelT:
        """Apply ``updates`` to an already-loaded row.

        Raises:
            ValidationError: If an update names a column the model does not have
        """
        for field in updates:
            self._column(field)
        for field, value in updates.items():
            setattr(instance, field, value)
        self._flush()
        return instance

    def delete(self, instance: ModelT) -> None:
        self.session.delete(instance)
        self._flush()

    def delete_by_condition(self, *conditions: ColumnElement[bool]) -> int:
        """Hard-delete matching rows. Deleting nothing is not an error.

        Returns:
            Number of rows deleted
        """
        stmt = delete(self.model).where(*conditions)
        try:
            result = self.session.execute(stmt)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise PersistenceError(f"Failed to delete {self.model.__name__} rows") from exc
        return result.rowcount or 0

    # ── helpers ──────────────────────────────────────────────────────────────

    def _column(self, field: str):
        if field not in self.model.__table__.columns:
            raise ValidationError(f"{self.model.__name__} has no field '{field}'")
        return getattr(self.model, field)

    def _flush(self) -> None:
        try:
            self.session.flush()
        except IntegrityError as exc:
            self.session.rollback()
            error = translate_integrity_error(exc, self.model.__name__)
            logger.warning(
                "db.write.rejected",
                extra={
                    "event": "db.write.rejected",
                    "model": self.model.__name__,
                    "error_type": type(error).__name__,
                    "constraint": _constraint_name(exc),
                },
            )
            raise error from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(
                "db.write.failed",
                extra={"event": "db.write.failed", "model": self.model.__name__},
                exc_info=True,
            )
            raise PersistenceError(f"Failed to write {self.model.__name__}") from exc

    def _read(self, query):
        try:
            return query()
        except SQLAlchemyError as exc:
            logger.error(
                "db.read.failed",
                extra={"event": "db.read.failed", "model": self.model.__name__},
                exc_info=True,
            )
            raise PersistenceError(f"Failed to read {self.model.__name__}") from exc


def commit(session: Session) -> None:
    """Commit the caller's unit of work, translating store failures.

    Raises:
        UniquenessViolation / NotFoundError / ValidationError: Deferred constraint failure
        PersistenceError: Any other store failure
    """
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise translate_integrity_error(exc, "Transaction") from exc
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("db.commit.failed", extra={"event": "db.commit.failed"}, exc_info=True)
        raise PersistenceError("Failed to commit transaction") from exc
