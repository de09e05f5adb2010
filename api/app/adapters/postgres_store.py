"""SQL-backed ProjectStore (PostgreSQL in production, any SQLAlchemy URL in tests)."""

from __future__ import annotations

import os
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    event,
    func,
    or_,
    select,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import NullPool

from app.adapters.project_store import build_filter_rows, order_projects, page_bounds
from app.models.project import FilterProjectsRow, Project, UserProject, utcnow

_IMMUTABLE_FIELDS = {"id", "project_uuid", "created_at"}


class Base(DeclarativeBase):
    pass


class ProjectRecord(Base):
    __tablename__ = "projects"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    thumbnail_image: Mapped[str | None] = mapped_column(String, nullable=True)
    icon_image: Mapped[str | None] = mapped_column(String, nullable=True)
    github_url: Mapped[str | None] = mapped_column(String, nullable=True)
    github_full_slug: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    groups: Mapped[str | None] = mapped_column(String, nullable=True)
    contributions: Mapped[str | None] = mapped_column(String, nullable=True)
    languages: Mapped[str | None] = mapped_column(String, nullable=True)
    paid_bounties: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    issues_count: Mapped[Any] = mapped_column(JSON, nullable=True)
    stars_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    communities: Mapped[Any] = mapped_column(JSON, nullable=True)
    project_uuid: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)


class UserProjectRecord(Base):
    __tablename__ = "userprojects"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    project_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role_number: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


def _unicode_lower(value):
    return value.lower() if isinstance(value, str) else value


def _create_engine(url: str):
    kwargs: dict[str, Any] = {"pool_pre_ping": True}
    if not url.startswith("sqlite"):
        return create_engine(url, **kwargs)

    kwargs["connect_args"] = {"check_same_thread": False}
    kwargs["poolclass"] = NullPool
    engine = create_engine(url, **kwargs)

    # SQLite lower() folds ASCII only; ILIKE compiles to lower() LIKE lower().
    @event.listens_for(engine, "connect")
    def _register_lower(dbapi_connection, _record):
        dbapi_connection.create_function("lower", 1, _unicode_lower)

    return engine


def _like_pattern(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _ilike(column, value: Optional[str]):
    return column.ilike(_like_pattern(value.strip()), escape="\\")


def _to_project(record: ProjectRecord) -> Project:
    return Project.model_validate(record)


def _to_link(record: UserProjectRecord) -> UserProject:
    return UserProject.model_validate(record)


def _new_record(project: Project) -> ProjectRecord:
    values = project.model_dump(exclude=_IMMUTABLE_FIELDS)
    return ProjectRecord(
        **values,
        project_uuid=project.project_uuid or str(uuid4()),
        created_at=utcnow(),
    )


class PostgresProjectStore:
    """ProjectStore over SQLAlchemy. ``filter_projects`` runs in a single session."""

    def __init__(self, database_url: str | None = None) -> None:
        if not database_url:
            database_url = os.getenv("DATABASE_URL")
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresProjectStore")

        self.engine = _create_engine(database_url)
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False, expire_on_commit=False)
        self._ensure_tables()

    def _ensure_tables(self) -> None:
        """Create tables if they don't exist."""
        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def _session(self):
        """Get a new database session with proper cleanup."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _newest_first(self, stmt):
        return stmt.order_by(ProjectRecord.created_at.desc(), ProjectRecord.id.desc())

    def get_project(self, project_id: int) -> Optional[Project]:
        with self._session() as session:
            record = session.get(ProjectRecord, project_id)
            return _to_project(record) if record else None

    def get_project_by_uuid(self, project_uuid: str) -> Optional[Project]:
        with self._session() as session:
            record = session.scalars(
                select(ProjectRecord).where(ProjectRecord.project_uuid == project_uuid)
            ).first()
            return _to_project(record) if record else None

    def list_projects(self) -> list[Project]:
        with self._session() as session:
            records = session.scalars(self._newest_first(select(ProjectRecord))).all()
            return [_to_project(r) for r in records]

    def search(self, query: str) -> list[Project]:
        stmt = select(ProjectRecord)
        if (query or "").strip():
            stmt = stmt.where(or_(_ilike(ProjectRecord.name, query), _ilike(ProjectRecord.description, query)))
        with self._session() as session:
            return [_to_project(r) for r in session.scalars(self._newest_first(stmt)).all()]

    def list_projects_by_group(self, group: str) -> list[Project]:
        stmt = select(ProjectRecord)
        if (group or "").strip():
            stmt = stmt.where(_ilike(ProjectRecord.groups, group))
        with self._session() as session:
            return [_to_project(r) for r in session.scalars(self._newest_first(stmt)).all()]

    def list_projects_for_user(self, user_id: str) -> list[Project]:
        stmt = (
            select(ProjectRecord)
            .join(UserProjectRecord, UserProjectRecord.project_id == ProjectRecord.id)
            .where(UserProjectRecord.user_id == user_id)
        )
        with self._session() as session:
            return [_to_project(r) for r in session.scalars(self._newest_first(stmt)).unique().all()]

    def insert_project(self, project: Project) -> Project:
        with self._session() as session:
            record = _new_record(project)
            session.add(record)
            session.flush()
            return _to_project(record)

    def update_project(self, project_id: int, changes: dict[str, Any]) -> Optional[Project]:
        with self._session() as session:
            record = session.get(ProjectRecord, project_id)
            if record is None:
                return None
            for key, value in changes.items():
                if key in _IMMUTABLE_FIELDS or not hasattr(ProjectRecord, key):
                    continue
                setattr(record, key, value)
            session.flush()
            return _to_project(record)

    def delete_project(self, project_id: int) -> bool:
        with self._session() as session:
            record = session.get(ProjectRecord, project_id)
            if record is None:
                return False
            session.query(UserProjectRecord).filter(UserProjectRecord.project_id == project_id).delete(
                synchronize_session=False
            )
            session.delete(record)
            return True

    def count_projects(self) -> int:
        with self._session() as session:
            return int(session.scalar(select(func.count()).select_from(ProjectRecord)) or 0)

    def insert_link(self, link: UserProject) -> UserProject:
        with self._session() as session:
            record = UserProjectRecord(
                user_id=link.user_id,
                project_id=link.project_id,
                role_number=link.role_number,
                created_at=utcnow(),
            )
            session.add(record)
            session.flush()
            return _to_link(record)

    def get_link(self, user_id: str, project_id: int) -> Optional[UserProject]:
        with self._session() as session:
            record = session.scalars(
                select(UserProjectRecord).where(
                    UserProjectRecord.user_id == user_id,
                    UserProjectRecord.project_id == project_id,
                )
            ).first()
            return _to_link(record) if record else None

    def create_project_with_link(self, project: Project, user_id: str, role_number: int) -> Project:
        with self._session() as session:
            record = _new_record(project)
            session.add(record)
            session.flush()
            session.add(
                UserProjectRecord(
                    user_id=user_id,
                    project_id=record.id,
                    role_number=role_number,
                    created_at=utcnow(),
                )
            )
            session.flush()
            return _to_project(record)

    def filter_projects(
        self,
        group: str,
        contributions: str,
        query: str,
        page: int,
        page_size: int,
        min_stars: Optional[float] = None,
        max_stars: Optional[float] = None,
        language: Optional[str] = None,
        seed: Optional[str] = None,
    ) -> list[FilterProjectsRow]:
        conditions = []
        if (group or "").strip():
            conditions.append(_ilike(ProjectRecord.groups, group))
        if (contributions or "").strip():
            conditions.append(_ilike(ProjectRecord.contributions, contributions))
        if (query or "").strip():
            conditions.append(or_(_ilike(ProjectRecord.name, query), _ilike(ProjectRecord.description, query)))
        stars = func.coalesce(ProjectRecord.stars_count, 0)
        if min_stars is not None:
            conditions.append(stars >= min_stars)
        if max_stars is not None:
            conditions.append(stars <= max_stars)
        if (language or "").strip():
            conditions.append(_ilike(ProjectRecord.languages, language))

        start, end = page_bounds(page, page_size)
        with self._session() as session:
            if seed:
                # Seeded order is computed over the full match set so it is
                # identical to the in-memory backend.
                records = session.scalars(select(ProjectRecord).where(*conditions)).all()
                ordered = order_projects((_to_project(r) for r in records), seed)
                return build_filter_rows(ordered[start:end], len(ordered))

            total = int(
                session.scalar(select(func.count()).select_from(ProjectRecord).where(*conditions)) or 0
            )
            stmt = self._newest_first(select(ProjectRecord).where(*conditions)).offset(start).limit(end - start)
            records = session.scalars(stmt).all()
            return build_filter_rows([_to_project(r) for r in records], total)
