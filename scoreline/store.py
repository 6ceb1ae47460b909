"""Document-style data store used by the sync engine and settlement.

Sync and evaluation code only talks to the ``Store`` contract
(find/create/update), so it does not care which database sits behind it.
``SQLStore`` implements the contract on top of the SQLModel tables.

Where-clause language (a small subset of the CMS query syntax)::

    {"match_id": {"equals": 123}}
    {"status": {"in": ["finished", "live"]}, "date": {"greater_than_equal": dt}}
    {"or": [{"match_id": {"equals": 1}}, {"fixture_id": {"equals": 1}}]}

A bare value is shorthand for ``equals``.
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Union

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from scoreline.models import (
    Comment,
    CommentVote,
    JobRun,
    League,
    Market,
    Match,
    MatchStats,
    OutcomeGroup,
    Post,
    PredictionStats,
    SyncProgress,
    User,
)

logger = logging.getLogger(__name__)

COLLECTIONS: dict[str, type[SQLModel]] = {
    "matches": Match,
    "match_stats": MatchStats,
    "leagues": League,
    "posts": Post,
    "markets": Market,
    "outcome_groups": OutcomeGroup,
    "prediction_stats": PredictionStats,
    "users": User,
    "comments": Comment,
    "comment_votes": CommentVote,
    "sync_progress": SyncProgress,
    "job_runs": JobRun,
}


class StoreError(RuntimeError):
    """Base class for store failures."""


class UnknownCollection(StoreError):
    pass


class DuplicateKeyError(StoreError):
    """Raised when a create hits a unique constraint."""


class RecordNotFound(StoreError):
    pass


@dataclass
class FindResult:
    docs: list[dict] = field(default_factory=list)
    total_docs: int = 0
    total_pages: int = 0
    page: int = 1
    has_next_page: bool = False


class Store(ABC):
    """find/create/update contract over named collections of documents."""

    @abstractmethod
    async def find(
        self,
        collection: str,
        where: Optional[dict] = None,
        sort: Optional[Union[str, list[str]]] = None,
        limit: Optional[int] = 10,
        page: int = 1,
    ) -> FindResult:
        pass

    @abstractmethod
    async def create(self, collection: str, data: dict) -> dict:
        pass

    @abstractmethod
    async def update(self, collection: str, id: int, data: dict) -> dict:
        pass

    async def find_one(
        self,
        collection: str,
        where: Optional[dict] = None,
        sort: Optional[Union[str, list[str]]] = None,
    ) -> Optional[dict]:
        result = await self.find(collection, where=where, sort=sort, limit=1)
        return result.docs[0] if result.docs else None

    async def count(self, collection: str, where: Optional[dict] = None) -> int:
        result = await self.find(collection, where=where, limit=1)
        return result.total_docs

    async def close(self) -> None:
        """Release any held resources."""


# =============================================================================
# SQL implementation
# =============================================================================

_OPERATORS = {
    "equals": lambda col, v: col.is_(None) if v is None else col == v,
    "not_equals": lambda col, v: col.is_not(None) if v is None else col != v,
    "in": lambda col, v: col.in_(list(v)),
    "not_in": lambda col, v: col.not_in(list(v)),
    "greater_than": lambda col, v: col > v,
    "greater_than_equal": lambda col, v: col >= v,
    "less_than": lambda col, v: col < v,
    "less_than_equal": lambda col, v: col <= v,
    "exists": lambda col, v: col.is_not(None) if v else col.is_(None),
}


def _model_for(collection: str) -> type[SQLModel]:
    try:
        return COLLECTIONS[collection]
    except KeyError:
        raise UnknownCollection(f"Unknown collection: {collection}") from None


def _column(model: type[SQLModel], name: str):
    if name not in model.model_fields:
        raise StoreError(f"{model.__tablename__} has no field '{name}'")
    return getattr(model, name)


def build_where(model: type[SQLModel], where: Optional[dict]) -> list:
    """Translate a where-dict into a list of SQLAlchemy clauses (implicitly AND-ed)."""
    if not where:
        return []

    clauses = []
    for key, condition in where.items():
        if key == "and":
            nested = [and_(*build_where(model, sub)) for sub in condition]
            clauses.append(and_(*nested))
            continue
        if key == "or":
            nested = [and_(*build_where(model, sub)) for sub in condition]
            clauses.append(or_(*nested))
            continue

        col = _column(model, key)
        if not isinstance(condition, dict):
            condition = {"equals": condition}
        for op, value in condition.items():
            if op not in _OPERATORS:
                raise StoreError(f"Unsupported operator '{op}' on {key}")
            clauses.append(_OPERATORS[op](col, value))
    return clauses


def build_order(model: type[SQLModel], sort: Optional[Union[str, list[str]]]) -> list:
    if not sort:
        return [model.id]
    fields = [sort] if isinstance(sort, str) else list(sort)
    order = []
    for name in fields:
        if name.startswith("-"):
            order.append(_column(model, name[1:]).desc())
        else:
            order.append(_column(model, name).asc())
    return order


def _to_doc(obj: SQLModel) -> dict:
    return obj.model_dump()


class SQLStore(Store):
    """Store backed by SQLModel tables; one short transaction per operation."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        if session_factory is None:
            from scoreline.database import AsyncSessionLocal

            session_factory = AsyncSessionLocal
        self.session_factory = session_factory

    async def find(
        self,
        collection: str,
        where: Optional[dict] = None,
        sort: Optional[Union[str, list[str]]] = None,
        limit: Optional[int] = 10,
        page: int = 1,
    ) -> FindResult:
        model = _model_for(collection)
        clauses = build_where(model, where)
        page = max(1, page)

        async with self.session_factory() as session:
            count_stmt = select(func.count()).select_from(model)
            if clauses:
                count_stmt = count_stmt.where(*clauses)
            total = (await session.execute(count_stmt)).scalar_one()

            stmt = select(model)
            if clauses:
                stmt = stmt.where(*clauses)
            stmt = stmt.order_by(*build_order(model, sort))
            if limit:
                stmt = stmt.offset((page - 1) * limit).limit(limit)
            rows = (await session.execute(stmt)).scalars().all()

        if limit:
            total_pages = math.ceil(total / limit) if total else 0
        else:
            total_pages = 1 if total else 0

        return FindResult(
            docs=[_to_doc(row) for row in rows],
            total_docs=total,
            total_pages=total_pages,
            page=page,
            has_next_page=page < total_pages,
        )

    async def create(self, collection: str, data: dict) -> dict:
        model = _model_for(collection)
        values = {k: v for k, v in data.items() if k in model.model_fields and k != "id"}

        async with self.session_factory() as session:
            obj = model(**values)
            session.add(obj)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise DuplicateKeyError(f"{collection}: {e.orig}") from e
            await session.refresh(obj)
            return _to_doc(obj)

    async def update(self, collection: str, id: int, data: dict) -> dict:
        model = _model_for(collection)

        async with self.session_factory() as session:
            obj = await session.get(model, id)
            if obj is None:
                raise RecordNotFound(f"{collection} id={id} not found")
            for key, value in data.items():
                if key in model.model_fields and key != "id":
                    setattr(obj, key, value)
            session.add(obj)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise DuplicateKeyError(f"{collection}: {e.orig}") from e
            await session.refresh(obj)
            return _to_doc(obj)
