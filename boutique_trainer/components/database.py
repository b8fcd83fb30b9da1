from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String, Text, UniqueConstraint, select
from datetime import datetime, timezone
import os
import logging
from typing import List, Optional

from .models import ChatMessage, EvaluationResult, SessionConfig, SessionRecord

logger = logging.getLogger(__name__)

Base = declarative_base()

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./boutique_trainer.db"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SimulationSession(Base):
    """A finished, scored training session"""
    __tablename__ = "simulation_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), nullable=False, index=True)
    chapter_id = Column(String(255), nullable=True)
    brand = Column(String(255), nullable=False)
    persona = Column(String(64), nullable=False)
    scenario = Column(String(64), nullable=False)
    difficulty = Column(String(64), nullable=False)
    messages = Column(JSON, nullable=False, default=list)
    overall_score = Column(Integer, nullable=True)
    dimension_scores = Column(JSON, nullable=True)  # camelCase keys, as the evaluator returns them
    feedback = Column(Text, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)


class LearningProgress(Base):
    """Per-user, per-chapter course progress"""
    __tablename__ = "learning_progress"
    __table_args__ = (UniqueConstraint("user_id", "chapter_id", name="uq_learning_progress_user_chapter"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), nullable=False, index=True)
    chapter_id = Column(String(255), nullable=False)
    simulation_completed = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _to_record(row: SimulationSession) -> SessionRecord:
    return SessionRecord(
        id=row.id,
        user_id=row.user_id,
        chapter_id=row.chapter_id,
        brand=row.brand,
        persona=row.persona,
        scenario=row.scenario,
        difficulty=row.difficulty,
        messages=[ChatMessage(**m) for m in (row.messages or [])],
        overall_score=row.overall_score,
        dimension_scores=row.dimension_scores,
        feedback=row.feedback,
        completed_at=_iso(row.completed_at),
        created_at=_iso(row.created_at),
    )


class Database:
    """Database connection and operations manager"""

    def __init__(self):
        self.engine = None
        self.async_session = None
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self, database_url: Optional[str] = None):
        """Initialize database connection and create tables"""
        if self._initialized:
            return

        database_url = database_url or os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)

        # Convert postgresql:// to postgresql+asyncpg:// if needed
        if database_url.startswith("postgresql://"):
            database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

        logger.info(f"Database: Connecting to {database_url.split('@')[-1]}...")
        try:
            engine_kwargs = {"echo": False, "pool_pre_ping": True}
            if not database_url.startswith("sqlite"):
                engine_kwargs.update(pool_size=10, max_overflow=20)
            self.engine = create_async_engine(database_url, **engine_kwargs)

            self.async_session = async_sessionmaker(
                self.engine,
                class_=AsyncSession,
                expire_on_commit=False
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

            self._initialized = True
            logger.info("Database: Initialized successfully")
        except Exception as e:
            logger.error(f"Database: Failed to initialize: {str(e)}", exc_info=True)
            raise

    async def close(self):
        """Close database connection"""
        if self.engine:
            await self.engine.dispose()
            self._initialized = False
            logger.info("Database: Connection closed")

    def _require_initialized(self):
        if not self._initialized:
            raise RuntimeError("Database not initialized")

    async def save_session(
        self,
        user_id: str,
        config: SessionConfig,
        messages: List[ChatMessage],
        evaluation: EvaluationResult,
        chapter_id: Optional[str] = None,
    ) -> int:
        """Insert one finished session with its evaluation. Returns the record id."""
        self._require_initialized()

        try:
            async with self.async_session() as session:
                row = SimulationSession(
                    user_id=user_id,
                    chapter_id=chapter_id,
                    brand=config.brand,
                    persona=config.persona_id,
                    scenario=config.scenario_id,
                    difficulty=config.difficulty,
                    messages=[m.model_dump() for m in messages],
                    overall_score=evaluation.overall_score,
                    dimension_scores=evaluation.dimensions.model_dump(by_alias=True),
                    feedback=evaluation.feedback,
                    completed_at=_utcnow(),
                )
                session.add(row)
                await session.commit()
                logger.info(f"Database: Saved session record {row.id} for user {user_id} (score {evaluation.overall_score})")
                return row.id
        except Exception as e:
            logger.error(f"Database: Error saving session for user {user_id}: {str(e)}", exc_info=True)
            raise

    async def mark_chapter_completed(self, user_id: str, chapter_id: str):
        """Upsert learning progress for (user, chapter) with simulation_completed set."""
        self._require_initialized()

        try:
            async with self.async_session() as session:
                result = await session.execute(
                    select(LearningProgress).where(
                        LearningProgress.user_id == user_id,
                        LearningProgress.chapter_id == chapter_id,
                    )
                )
                progress = result.scalar_one_or_none()
                if progress is None:
                    session.add(LearningProgress(user_id=user_id, chapter_id=chapter_id, simulation_completed=True))
                else:
                    progress.simulation_completed = True
                await session.commit()
                logger.info(f"Database: Chapter {chapter_id} simulation completed for user {user_id}")
        except Exception as e:
            logger.error(f"Database: Error updating progress for user {user_id}, chapter {chapter_id}: {str(e)}", exc_info=True)
            raise

    async def get_chapter_progress(self, user_id: str, chapter_id: str) -> Optional[bool]:
        """simulation_completed for (user, chapter), or None when no progress row exists."""
        self._require_initialized()

        async with self.async_session() as session:
            result = await session.execute(
                select(LearningProgress.simulation_completed).where(
                    LearningProgress.user_id == user_id,
                    LearningProgress.chapter_id == chapter_id,
                )
            )
            return result.scalar_one_or_none()

    async def list_sessions(self, user_id: str, limit: Optional[int] = None, scored_only: bool = False) -> List[SessionRecord]:
        """A user's session records, newest first."""
        self._require_initialized()

        try:
            async with self.async_session() as session:
                query = select(SimulationSession).where(SimulationSession.user_id == user_id)
                if scored_only:
                    query = query.where(SimulationSession.overall_score.is_not(None))
                query = query.order_by(SimulationSession.created_at.desc(), SimulationSession.id.desc())
                if limit:
                    query = query.limit(limit)
                result = await session.execute(query)
                records = [_to_record(row) for row in result.scalars().all()]
                logger.info(f"Database: Retrieved {len(records)} session records for user {user_id}")
                return records
        except Exception as e:
            logger.error(f"Database: Error listing sessions for user {user_id}: {str(e)}", exc_info=True)
            raise

    async def get_record(self, record_id: int) -> Optional[SessionRecord]:
        self._require_initialized()

        async with self.async_session() as session:
            row = await session.get(SimulationSession, record_id)
            return _to_record(row) if row else None
