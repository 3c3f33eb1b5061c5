from __future__ import annotations

from datetime import datetime, timezone
from typing import Sequence

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Integer,
    String,
    func,
    select,
)

from services.media.application.interfaces import UploadSessionRepository
from services.media.domain.errors import NotFound
from services.media.domain.upload import UploadSession
from services.media.infrastructure.db import Base


class UploadSessionRecord(Base):
    """One upload session row.

    ``chunk_size`` and ``chunk_keys`` stay empty for single-object videos. They
    are set through ``record_chunks`` when the bytes are stored as separate
    fixed-size chunk objects, which switches streaming to per-chunk reads.
    """

    __tablename__ = "upload_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    video_id = Column(String(64), nullable=False, unique=True)
    object_key = Column(String, nullable=False)
    upload_id = Column(String, nullable=False, index=True)
    original_filename = Column(String, nullable=False)
    total_size = Column(BigInteger, nullable=False)
    mime_type = Column(String, nullable=False)
    destination_folder = Column(String, nullable=False, default="videos")
    is_complete = Column(Boolean, nullable=False, default=False, index=True)
    final_object_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    duration = Column(Integer, nullable=False, default=0)
    chunk_size = Column(BigInteger, nullable=True)
    chunk_keys = Column(JSON, nullable=False, default=list)


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _to_domain(record: UploadSessionRecord) -> UploadSession:
    return UploadSession(
        video_id=record.video_id,
        object_key=record.object_key,
        upload_id=record.upload_id,
        original_filename=record.original_filename,
        total_size=record.total_size,
        mime_type=record.mime_type,
        destination_folder=record.destination_folder,
        created_at=_as_utc(record.created_at),
        is_complete=bool(record.is_complete),
        final_object_url=record.final_object_url,
        completed_at=_as_utc(record.completed_at),
        duration=record.duration or 0,
        chunk_size=record.chunk_size,
        chunk_keys=tuple(record.chunk_keys or ()),
    )


class SqlAlchemyUploadSessionRepository(UploadSessionRepository):
    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory

    def create(self, session: UploadSession) -> UploadSession:
        if not session.upload_id:
            raise ValueError("upload_id is required to persist an upload session")
        record = UploadSessionRecord(
            video_id=session.video_id,
            object_key=session.object_key,
            upload_id=session.upload_id,
            original_filename=session.original_filename,
            total_size=session.total_size,
            mime_type=session.mime_type,
            destination_folder=session.destination_folder,
            is_complete=session.is_complete,
            final_object_url=session.final_object_url,
            created_at=session.created_at,
            completed_at=session.completed_at,
            duration=session.duration,
            chunk_size=session.chunk_size,
            chunk_keys=list(session.chunk_keys),
        )
        with self._session_factory() as db:
            db.add(record)
            db.commit()
        return session

    def get(self, video_id: str) -> UploadSession | None:
        with self._session_factory() as db:
            record = self._find(db, video_id)
            return _to_domain(record) if record is not None else None

    def mark_complete(
        self, video_id: str, *, final_object_url: str, completed_at: datetime
    ) -> UploadSession:
        with self._session_factory() as db:
            record = self._require(db, video_id)
            record.is_complete = True
            record.final_object_url = final_object_url
            record.completed_at = completed_at
            db.commit()
            return _to_domain(record)

    def set_duration(self, video_id: str, duration: int) -> UploadSession:
        with self._session_factory() as db:
            record = self._require(db, video_id)
            record.duration = max(int(duration), 0)
            db.commit()
            return _to_domain(record)

    def record_chunks(
        self, video_id: str, *, chunk_size: int, chunk_keys: Sequence[str]
    ) -> UploadSession:
        if chunk_size <= 0 or not chunk_keys:
            raise ValueError("chunk_size must be positive and chunk_keys non-empty")
        with self._session_factory() as db:
            record = self._require(db, video_id)
            record.chunk_size = chunk_size
            record.chunk_keys = list(chunk_keys)
            db.commit()
            return _to_domain(record)

    def delete(self, video_id: str) -> bool:
        with self._session_factory() as db:
            record = self._find(db, video_id)
            if record is None:
                return False
            db.delete(record)
            db.commit()
            return True

    def list_stale(self, older_than: datetime) -> list[UploadSession]:
        with self._session_factory() as db:
            records = db.scalars(
                select(UploadSessionRecord)
                .where(
                    UploadSessionRecord.is_complete.is_(False),
                    UploadSessionRecord.created_at < older_than,
                )
                .order_by(UploadSessionRecord.created_at)
            ).all()
            return [_to_domain(record) for record in records]

    def list(
        self, *, is_complete: bool | None = None, limit: int = 10, offset: int = 0
    ) -> tuple[list[UploadSession], int]:
        query = select(UploadSessionRecord)
        count_query = select(func.count(UploadSessionRecord.id))
        if is_complete is not None:
            query = query.where(UploadSessionRecord.is_complete.is_(is_complete))
            count_query = count_query.where(
                UploadSessionRecord.is_complete.is_(is_complete)
            )
        with self._session_factory() as db:
            records = db.scalars(
                query.order_by(UploadSessionRecord.created_at.desc())
                .limit(limit)
                .offset(offset)
            ).all()
            total = db.scalar(count_query) or 0
            return [_to_domain(record) for record in records], total

    @staticmethod
    def _find(db, video_id: str) -> UploadSessionRecord | None:
        return db.scalars(
            select(UploadSessionRecord).where(UploadSessionRecord.video_id == video_id)
        ).one_or_none()

    def _require(self, db, video_id: str) -> UploadSessionRecord:
        record = self._find(db, video_id)
        if record is None:
            raise NotFound(f"Upload session {video_id} not found")
        return record
