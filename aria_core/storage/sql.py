"""
SQL Storage

SQLAlchemy async implementation of the storage interface. All entity types
share a single ``records`` table with a JSON payload column.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import (
    AsyncGenerator,
    List,
    Optional,
)

import structlog
from sqlalchemy import JSON, DateTime, Index, String, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from aria_core.storage.base import Record, StorageBackend, StorageError, utcnow


logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for storage models."""


class RecordRow(Base):
    __tablename__ = "records"

    entity_type: Mapped[str] = mapped_column(String(64), primary_key=True)
    entity_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_records_type_updated", "entity_type", "updated_at"),
    )


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class SQLStorage(StorageBackend):
    """
    Storage backed by a SQLAlchemy async engine.

    Usage:
        storage = SQLStorage("sqlite+aiosqlite:///aria.db")
        await storage.create_all()
        await storage.put("email", "e1", {...})
    """

    def __init__(self, database_url: str, echo: bool = False):
        if database_url.startswith("sqlite://"):
            database_url = database_url.replace("sqlite://", "sqlite+aiosqlite://")
        elif database_url.startswith("postgresql://"):
            database_url = database_url.replace("postgresql://", "postgresql+asyncpg://")

        self._database_url = database_url
        self._echo = echo
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None

    @property
    def engine(self) -> AsyncEngine:
        """Get or create the database engine."""
        if self._engine is None:
            self._engine = create_async_engine(self._database_url, echo=self._echo)
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker:
        if self._session_factory is None:
            self._session_factory = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )
        return self._session_factory

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error("storage_operation_failed", error=str(e))
            raise StorageError(f"Storage operation failed: {e}") from e
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def create_all(self) -> None:
        """Create the records table."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def get(self, entity_type: str, entity_id: str) -> Optional[Record]:
        async with self.session() as session:
            row = await session.get(RecordRow, (entity_type, entity_id))
            return dict(row.payload) if row else None

    async def put(self, entity_type: str, entity_id: str, data: Record) -> None:
        async with self.session() as session:
            row = await session.get(RecordRow, (entity_type, entity_id))
            now = _naive_utc(utcnow())
            if row is None:
                session.add(
                    RecordRow(
                        entity_type=entity_type,
                        entity_id=entity_id,
                        payload=dict(data),
                        updated_at=now,
                    )
                )
            else:
                row.payload = dict(data)
                row.updated_at = now

    async def delete(self, entity_type: str, entity_id: str) -> bool:
        async with self.session() as session:
            row = await session.get(RecordRow, (entity_type, entity_id))
            if row is None:
                return False
            await session.delete(row)
            return True

    async def list(self, entity_type: str) -> List[Record]:
        async with self.session() as session:
            result = await session.execute(
                select(RecordRow).where(RecordRow.entity_type == entity_type)
            )
            return [dict(row.payload) for row in result.scalars().all()]

    async def modified_since(self, entity_type: str, since: datetime) -> List[Record]:
        async with self.session() as session:
            result = await session.execute(
                select(RecordRow)
                .where(RecordRow.entity_type == entity_type)
                .where(RecordRow.updated_at >= _naive_utc(since))
                .order_by(RecordRow.updated_at)
            )
            return [dict(row.payload) for row in result.scalars().all()]

    async def close(self) -> None:
        """Close the database connection."""
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None


__all__ = ["Base", "RecordRow", "SQLStorage"]
