"""ORM models for the host application's tables.

The notifier only reads ``tasks``, ``projects`` and ``profiles``; the host
application owns them. ``create_schema`` exists for local databases and tests.
"""

from sqlalchemy import Column, ForeignKey, Index, String, Text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship

from ..events.models import Profile, TaskRecord
from ..logging import get_logger

logger = get_logger(__name__, component="database")

Base = declarative_base()


class ProjectModel(Base):
    __tablename__ = "projects"

    id = Column(String(64), primary_key=True)
    title = Column(Text, nullable=False)


class TaskModel(Base):
    """A task row with its workflow state in ``task_status``."""

    __tablename__ = "tasks"

    id = Column(String(64), primary_key=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    project_id = Column(String(64), ForeignKey("projects.id"), nullable=True)
    assigner_id = Column(String(64), ForeignKey("profiles.id"), nullable=True)
    assignee_id = Column(String(64), ForeignKey("profiles.id"), nullable=True)
    task_status = Column(String(32), nullable=True)

    project = relationship(ProjectModel, lazy="joined")

    __table_args__ = (Index("idx_tasks_status", "task_status"),)

    def to_domain(self) -> TaskRecord:
        return TaskRecord(
            id=self.id,
            title=self.title,
            description=self.description,
            project_id=self.project_id,
            project_title=self.project.title if self.project else None,
            assigner_id=self.assigner_id,
            assignee_id=self.assignee_id,
            task_status=self.task_status,
        )


class ProfileModel(Base):
    __tablename__ = "profiles"

    id = Column(String(64), primary_key=True)
    email = Column(String(320), nullable=True)
    full_name = Column(String(255), nullable=True)
    role = Column(String(32), nullable=True)

    def to_domain(self) -> Profile:
        return Profile(id=self.id, email=self.email, full_name=self.full_name, role=self.role)


def create_schema(engine: Engine) -> None:
    """Create any missing tables."""
    Base.metadata.create_all(engine)
    logger.info("Database schema ensured", extra={"event": "database.schema_created"})
