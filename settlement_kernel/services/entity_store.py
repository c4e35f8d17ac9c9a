"""
Module: settlement_kernel.services.entity_store
Responsibility: Generic typed repository over one ORM model:
    list / filter / get / create / update / bulk_create, plus the
    idempotent get_or_create used by every creation step of a cascade.
Architecture position: Kernel > Services.  Imports db/, models/ only through
    the model class it is constructed with.

Invariants enforced:
    - Every call runs in its own short transaction (session_scope) and
      returns detached, fully loaded instances.  Calls are individually
      atomic and never composed into a larger transaction.
    - update() is a compare-and-set on ``version``: the UPDATE carries
      ``WHERE version = :expected`` and a zero row count raises
      OptimisticLockError instead of overwriting a concurrent change.
    - get_or_create() relies on the unique constraint behind the key column;
      a concurrent insert that loses the race returns the winner's row.
    - Locked fields (db/immutability.py) are checked before every update.

Failure modes:
    - EntityNotFoundError from get()/get_by()/update() on a missing row.
    - OptimisticLockError when the row changed since it was read.
    - ImmutabilityViolationError when a patch touches a locked field.
"""

from __future__ import annotations

from typing import Any, Callable, Generic, Iterable, TypeVar
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from settlement_kernel.db.base import TrackedBase
from settlement_kernel.db.engine import session_scope
from settlement_kernel.db.immutability import check_patch_allowed
from settlement_kernel.exceptions import EntityNotFoundError, OptimisticLockError
from settlement_kernel.logging_config import get_logger

logger = get_logger("services.entity_store")

M = TypeVar("M", bound=TrackedBase)

_PROTECTED_COLUMNS = frozenset({"id", "version", "created_at", "created_by"})


def _as_uuid(value: UUID | str) -> UUID:
    return value if isinstance(value, UUID) else UUID(str(value))


class EntityStore(Generic[M]):
    """
    Typed repository for one model.

    Usage:
        batches = EntityStore(session_factory, Batch)
        batch = batches.get_by(batch_id="BATCH-2025-01")
        batch = batches.update(batch.id, {"status": "Validated"},
                               expected_version=batch.version,
                               actor_email=actor.email)
    """

    def __init__(self, session_factory: sessionmaker[Session], model: type[M]):
        self._session_factory = session_factory
        self._model = model
        self._columns = frozenset(c.key for c in model.__table__.columns)

    @property
    def model(self) -> type[M]:
        return self._model

    @property
    def entity_type(self) -> str:
        return self._model.__name__

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _criteria(self, criteria: dict[str, Any]) -> list:
        clauses = []
        for name, value in criteria.items():
            if name not in self._columns:
                raise ValueError(f"{self.entity_type} has no column '{name}'")
            column = getattr(self._model, name)
            if isinstance(value, (list, tuple, set, frozenset)):
                clauses.append(column.in_(list(value)))
            elif value is None:
                clauses.append(column.is_(None))
            else:
                clauses.append(column == value)
        return clauses

    def list(self) -> list[M]:
        return self.filter()

    def filter(
        self,
        predicate: Callable[[M], bool] | None = None,
        **criteria: Any,
    ) -> list[M]:
        """
        Return rows matching column criteria and an optional predicate.

        Criteria values that are collections become IN clauses.  The
        predicate is applied in Python after the query.
        """
        stmt = select(self._model).where(*self._criteria(criteria))
        with session_scope(self._session_factory) as session:
            rows = list(session.scalars(stmt))
        if predicate is not None:
            rows = [r for r in rows if predicate(r)]
        return rows

    def find_one(self, **criteria: Any) -> M | None:
        rows = self.filter(**criteria)
        return rows[0] if rows else None

    def get(self, entity_id: UUID | str) -> M:
        with session_scope(self._session_factory) as session:
            entity = session.get(self._model, _as_uuid(entity_id))
        if entity is None:
            raise EntityNotFoundError(self.entity_type, str(entity_id))
        return entity

    def get_by(self, **criteria: Any) -> M:
        entity = self.find_one(**criteria)
        if entity is None:
            key = ", ".join(f"{k}={v}" for k, v in criteria.items())
            raise EntityNotFoundError(self.entity_type, key)
        return entity

    def count(self, predicate: Callable[[M], bool] | None = None, **criteria: Any) -> int:
        return len(self.filter(predicate, **criteria))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, fields: dict[str, Any], actor_email: str | None = None) -> M:
        entity = self._model(**fields)
        if actor_email is not None:
            entity.created_by = actor_email
            entity.updated_by = actor_email
        with session_scope(self._session_factory) as session:
            session.add(entity)
            session.flush()
            session.refresh(entity)
        logger.debug(
            "entity_created",
            extra={"entity_type": self.entity_type, "entity_id": str(entity.id)},
        )
        return entity

    def bulk_create(
        self,
        rows: Iterable[dict[str, Any]],
        actor_email: str | None = None,
    ) -> list[M]:
        entities = [self._model(**fields) for fields in rows]
        for entity in entities:
            if actor_email is not None:
                entity.created_by = actor_email
                entity.updated_by = actor_email
        with session_scope(self._session_factory) as session:
            session.add_all(entities)
            session.flush()
            for entity in entities:
                session.refresh(entity)
        logger.debug(
            "entities_bulk_created",
            extra={"entity_type": self.entity_type, "count": len(entities)},
        )
        return entities

    def get_or_create(
        self,
        key: str,
        fields: dict[str, Any],
        *,
        key_field: str = "idempotency_key",
        actor_email: str | None = None,
    ) -> tuple[M, bool]:
        """
        Create the row identified by ``key`` unless it already exists.

        Returns:
            (entity, created).  created is False when the row existed,
            including when a concurrent caller inserted it first.
        """
        existing = self.find_one(**{key_field: key})
        if existing is not None:
            return existing, False
        try:
            entity = self.create({**fields, key_field: key}, actor_email=actor_email)
        except IntegrityError:
            existing = self.find_one(**{key_field: key})
            if existing is None:
                raise
            logger.info(
                "idempotent_create_race_resolved",
                extra={"entity_type": self.entity_type, "key": key},
            )
            return existing, False
        return entity, True

    def update(
        self,
        entity_id: UUID | str,
        patch: dict[str, Any],
        *,
        expected_version: int | None = None,
        actor_email: str | None = None,
    ) -> M:
        """
        Apply ``patch`` with an optimistic version check.

        When ``expected_version`` is None the version read at the start of
        this call is used, which still protects against a write landing
        between the read and the UPDATE.
        """
        unknown = set(patch) - self._columns
        if unknown:
            raise ValueError(f"{self.entity_type} has no column(s) {sorted(unknown)}")
        protected = set(patch) & _PROTECTED_COLUMNS
        if protected:
            raise ValueError(f"{self.entity_type} column(s) {sorted(protected)} are managed by the store")

        uid = _as_uuid(entity_id)
        with session_scope(self._session_factory) as session:
            current = session.get(self._model, uid)
            if current is None:
                raise EntityNotFoundError(self.entity_type, str(entity_id))
            version = current.version
            if expected_version is not None and version != expected_version:
                raise OptimisticLockError(self.entity_type, str(entity_id))

            check_patch_allowed(current, patch)

            values = dict(patch)
            values["version"] = version + 1
            if actor_email is not None:
                values["updated_by"] = actor_email

            result = session.execute(
                update(self._model)
                .where(self._model.id == uid, self._model.version == version)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise OptimisticLockError(self.entity_type, str(entity_id))

            session.refresh(current)
        return current
