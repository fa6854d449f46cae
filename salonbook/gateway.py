"""Data access gateway over the relational store.

Every read and write issued by the services goes through a ``StoreGateway``.
Rows are addressed by table name; store failures come back as the typed
errors of :mod:`salonbook.errors` instead of SQLAlchemy exceptions. The
gateway never retries: callers decide what to do with a failure.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Mapping

from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .errors import (ConnectivityError, InputValidationError, NotFoundError,
                     RemoteValidationError)
from .models import (AuthAccount, Comment, Message, Profile, Rating,
                     Reservation, Salon, SalonImage)

logger = logging.getLogger(__name__)

ENTITIES: dict[str, type] = {
    "profiles": Profile,
    "auth_accounts": AuthAccount,
    "salons": Salon,
    "salon_images": SalonImage,
    "reservations": Reservation,
    "ratings": Rating,
    "messages": Message,
    "comments": Comment,
}

_DEPTH_KEY = "salonbook.transaction_depth"


class StoreGateway:
    """Typed query/insert/update/delete wrapper around a SQLAlchemy session."""

    def __init__(self, database: SQLAlchemy) -> None:
        self._db = database

    @property
    def session(self):
        return self._db.session

    # -- helpers -----------------------------------------------------------

    @staticmethod
    def model_for(entity: str) -> type:
        try:
            return ENTITIES[entity]
        except KeyError:
            raise InputValidationError(f"unknown entity '{entity}'") from None

    @staticmethod
    def _column(model: type, name: str):
        column = model.__table__.columns.get(name)
        if column is None:
            raise InputValidationError(f"{model.__tablename__} has no column '{name}'")
        return getattr(model, column.key)

    @contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        try:
            yield
        except IntegrityError as exc:
            self.session.rollback()
            logger.warning("%s rejected by the store: %s", action, exc.orig)
            raise RemoteValidationError(f"{action} rejected by the store") from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("%s failed", action)
            raise ConnectivityError(f"{action} failed") from exc

    def _in_transaction(self) -> bool:
        return self.session.info.get(_DEPTH_KEY, 0) > 0

    def _finish(self) -> None:
        # Inside a unit of work the outer ``transaction()`` commits.
        if self._in_transaction():
            self.session.flush()
        else:
            self.session.commit()

    # -- reads -------------------------------------------------------------

    def query(
        self,
        entity: str,
        filters: Mapping[str, Any] | None = None,
        *,
        ranges: Mapping[str, tuple[Any, Any]] | None = None,
        order_by: str | list[str] | None = None,
        limit: int | None = None,
    ) -> list[Any]:
        """Return rows matching equality ``filters`` and inclusive ``ranges``."""
        model = self.model_for(entity)
        statement = model.query
        for name, value in (filters or {}).items():
            column = self._column(model, name)
            statement = statement.filter(column.is_(None) if value is None else column == value)
        for name, (low, high) in (ranges or {}).items():
            column = self._column(model, name)
            if low is not None:
                statement = statement.filter(column >= low)
            if high is not None:
                statement = statement.filter(column <= high)
        if order_by:
            for key in [order_by] if isinstance(order_by, str) else order_by:
                column = self._column(model, key.lstrip("-"))
                statement = statement.order_by(column.desc() if key.startswith("-") else column.asc())
        if limit:
            statement = statement.limit(limit)

        with self._guard(f"query {entity}"):
            return statement.all()

    def first(self, entity: str, filters: Mapping[str, Any]) -> Any | None:
        rows = self.query(entity, filters, limit=1)
        return rows[0] if rows else None

    def get(self, entity: str, row_id: Any, *, for_update: bool = False) -> Any | None:
        """Fetch one row by primary key.

        ``for_update`` reloads the row with ``SELECT ... FOR UPDATE`` so
        concurrent writers of the same row queue behind the current
        transaction.
        """
        model = self.model_for(entity)
        with self._guard(f"get {entity}"):
            if for_update:
                return self.session.get(model, row_id, with_for_update=True, populate_existing=True)
            return self.session.get(model, row_id)

    def get_or_404(self, entity: str, row_id: Any, *, for_update: bool = False) -> Any:
        row = self.get(entity, row_id, for_update=for_update)
        if row is None:
            raise NotFoundError(f"{entity} {row_id} not found")
        return row

    # -- writes ------------------------------------------------------------

    def insert(self, entity: str, row: Mapping[str, Any]) -> Any:
        model = self.model_for(entity)
        for name in row:
            self._column(model, name)
        instance = model(**row)
        with self._guard(f"insert into {entity}"):
            self.session.add(instance)
            self._finish()
        return instance

    def update(self, entity: str, row_id: Any, patch: Mapping[str, Any]) -> Any:
        model = self.model_for(entity)
        for name in patch:
            self._column(model, name)
        instance = self.get_or_404(entity, row_id)
        with self._guard(f"update {entity}"):
            for name, value in patch.items():
                setattr(instance, name, value)
            self._finish()
        return instance

    def delete(self, entity: str, row_id: Any) -> None:
        instance = self.get_or_404(entity, row_id)
        with self._guard(f"delete from {entity}"):
            self.session.delete(instance)
            self._finish()

    def delete_where(self, entity: str, filters: Mapping[str, Any]) -> int:
        """Delete every row matching equality ``filters``; returns the count."""
        if not filters:
            raise InputValidationError(f"refusing to delete every row of {entity}")
        rows = self.query(entity, filters)
        with self._guard(f"delete from {entity}"):
            for row in rows:
                self.session.delete(row)
            self._finish()
        return len(rows)

    @contextmanager
    def transaction(self) -> Iterator["StoreGateway"]:
        """Group writes into one commit. Nested calls join the outer unit."""
        info = self.session.info
        depth = info.get(_DEPTH_KEY, 0)
        info[_DEPTH_KEY] = depth + 1
        try:
            yield self
        except BaseException:
            info[_DEPTH_KEY] = depth
            if depth == 0:
                self.session.rollback()
            raise
        info[_DEPTH_KEY] = depth
        if depth == 0:
            with self._guard("commit"):
                self.session.commit()

    def ping(self) -> None:
        with self._guard("connectivity check"):
            self.session.execute(text("SELECT 1"))


def get_gateway() -> StoreGateway:
    """Return the gateway constructed by the application factory."""
    return current_app.extensions["gateway"]
