# src/services/document_store.py
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from services.filters import MatchAll, Predicate
from utils.exceptions import NotFoundException, handle_db_exception
from utils.logger import setup_logger

logger = setup_logger("DOCUMENT_STORE")

SortSpec = Sequence[Tuple[str, str]]


class DocumentStore:
    """
    Queryable store over one request-scoped session.

    Member sets (reactions, read receipts, flags...) are written with
    dialect-native INSERT .. ON CONFLICT statements so concurrent writers on
    the same parent row never overwrite each other. Reads always repopulate
    already-loaded objects so those writes are visible.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    def _where(self, model, predicate: Optional[Predicate]):
        return (predicate or MatchAll()).to_clause(model)

    def _insert(self, model):
        dialect = self.db.get_bind().dialect.name
        insert_fn = pg_insert if dialect == "postgresql" else sqlite_insert
        return insert_fn(model.__table__)

    async def find(
        self,
        model: Type,
        predicate: Optional[Predicate] = None,
        sort: Optional[SortSpec] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[Any]:
        """Rows matching the predicate, sorted and paginated"""
        try:
            query = select(model).where(self._where(model, predicate))
            for field, direction in sort or ():
                column = getattr(model, field)
                query = query.order_by(
                    column.desc() if direction == "desc" else column.asc()
                )
            if skip:
                query = query.offset(skip)
            if limit is not None:
                query = query.limit(limit)

            result = await self.db.execute(
                query.execution_options(populate_existing=True)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            await handle_db_exception(self.db, logger, f"find {model.__name__}", e)

    async def count(self, model: Type, predicate: Optional[Predicate] = None) -> int:
        try:
            result = await self.db.execute(
                select(func.count())
                .select_from(model)
                .where(self._where(model, predicate))
            )
            return result.scalar_one()
        except SQLAlchemyError as e:
            await handle_db_exception(self.db, logger, f"count {model.__name__}", e)

    async def find_one(self, model: Type, id: UUID) -> Optional[Any]:
        try:
            result = await self.db.execute(
                select(model)
                .where(model.id == id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            await handle_db_exception(self.db, logger, f"find_one {model.__name__}", e)

    async def get_or_raise(
        self, model: Type, id: UUID, detail: Optional[str] = None
    ) -> Any:
        document = await self.find_one(model, id)
        if document is None:
            raise NotFoundException(detail or f"{model.__name__} not found")
        return document

    async def save(self, document: Any) -> Any:
        """Stage a new or changed document and flush it"""
        try:
            self.db.add(document)
            await self.db.flush()
            return document
        except SQLAlchemyError as e:
            await handle_db_exception(
                self.db, logger, f"save {type(document).__name__}", e
            )

    async def update_many(
        self, model: Type, predicate: Predicate, values: Dict[str, Any]
    ) -> int:
        """Apply the same patch to every matching row; returns rows touched"""
        try:
            await self.db.flush()
            ids = (
                await self.db.execute(
                    select(model.id).where(self._where(model, predicate))
                )
            ).scalars().all()
            if not ids:
                return 0

            await self.db.execute(
                update(model)
                .where(model.id.in_(ids))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            return len(ids)
        except SQLAlchemyError as e:
            await handle_db_exception(
                self.db, logger, f"update_many {model.__name__}", e
            )

    async def delete_one(self, model: Type, id: UUID) -> bool:
        try:
            document = await self.find_one(model, id)
            if document is None:
                return False
            await self.db.delete(document)
            await self.db.flush()
            return True
        except SQLAlchemyError as e:
            await handle_db_exception(
                self.db, logger, f"delete_one {model.__name__}", e
            )

    async def upsert_member(
        self, model: Type, key: Dict[str, Any], values: Dict[str, Any]
    ) -> None:
        """Replace the member identified by ``key`` if present, else append it"""
        try:
            await self.db.flush()
            stmt = self._insert(model).values(**key, **values)
            stmt = stmt.on_conflict_do_update(index_elements=list(key), set_=values)
            await self.db.execute(stmt)
        except SQLAlchemyError as e:
            await handle_db_exception(
                self.db, logger, f"upsert_member {model.__name__}", e
            )

    async def insert_member_once(
        self, model: Type, key: Dict[str, Any], values: Optional[Dict[str, Any]] = None
    ) -> bool:
        """Append the member unless one already exists; True if it was added"""
        try:
            await self.db.flush()
            stmt = self._insert(model).values(**key, **(values or {}))
            stmt = stmt.on_conflict_do_nothing(index_elements=list(key))
            result = await self.db.execute(stmt)
            return result.rowcount == 1
        except SQLAlchemyError as e:
            await handle_db_exception(
                self.db, logger, f"insert_member_once {model.__name__}", e
            )

    async def delete_member(self, model: Type, key: Dict[str, Any]) -> bool:
        try:
            await self.db.flush()
            stmt = delete(model.__table__)
            for field, value in key.items():
                stmt = stmt.where(model.__table__.c[field] == value)
            result = await self.db.execute(stmt)
            return result.rowcount > 0
        except SQLAlchemyError as e:
            await handle_db_exception(
                self.db, logger, f"delete_member {model.__name__}", e
            )

    async def find_member(self, model: Type, key: Dict[str, Any]) -> Optional[Any]:
        try:
            result = await self.db.execute(
                select(model)
                .filter_by(**key)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            await handle_db_exception(
                self.db, logger, f"find_member {model.__name__}", e
            )

    async def group_count(
        self, model: Type, field: str, predicate: Optional[Predicate] = None
    ) -> Dict[Any, int]:
        """Row counts per distinct value of ``field``"""
        try:
            column = getattr(model, field)
            result = await self.db.execute(
                select(column, func.count())
                .where(self._where(model, predicate))
                .group_by(column)
            )
            return {
                (value.value if isinstance(value, Enum) else value): total
                for value, total in result.all()
            }
        except SQLAlchemyError as e:
            await handle_db_exception(
                self.db, logger, f"group_count {model.__name__}", e
            )

    async def distinct(
        self, model: Type, field: str, predicate: Optional[Predicate] = None
    ) -> List[Any]:
        try:
            column = getattr(model, field)
            result = await self.db.execute(
                select(column).where(self._where(model, predicate)).distinct()
            )
            return [
                value.value if isinstance(value, Enum) else value
                for value in result.scalars().all()
            ]
        except SQLAlchemyError as e:
            await handle_db_exception(
                self.db, logger, f"distinct {model.__name__}", e
            )

    async def commit(self) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await handle_db_exception(self.db, logger, "commit", e)
