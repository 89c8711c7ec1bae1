"""SQL-backed EntityStore."""

from typing import Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from ..events.models import Profile, TaskRecord
from ..events.sources import EntityStore
from ..logging import get_logger
from .database import get_session
from .exceptions import PersistenceError
from .schema import ProfileModel, TaskModel

logger = get_logger(__name__, component="database")


class SQLEntityStore(EntityStore):
    """Reads tasks and profiles through the module-level session factory."""

    def get_entity(self, entity_id: str) -> Optional[TaskRecord]:
        """Fetch a task (with its project title) by id.

        Raises:
            PersistenceError: If the query fails
        """
        try:
            with get_session() as session:
                task = session.get(TaskModel, entity_id)
                return task.to_domain() if task is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Error loading task {entity_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to load task {entity_id}: {e}") from e

    def get_profiles(self, ids: Sequence[str]) -> List[Profile]:
        """Fetch profiles by id, in the order requested.

        Raises:
            PersistenceError: If the query fails
        """
        wanted = [profile_id for profile_id in ids if profile_id]
        if not wanted:
            return []

        try:
            with get_session() as session:
                rows = session.execute(
                    select(ProfileModel).where(ProfileModel.id.in_(wanted))
                ).scalars()
                by_id = {row.id: row.to_domain() for row in rows}
        except SQLAlchemyError as e:
            logger.error(f"Error loading profiles {wanted}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to load profiles: {e}") from e

        return [by_id[profile_id] for profile_id in dict.fromkeys(wanted) if profile_id in by_id]

    def task_status_snapshot(self) -> Dict[str, Optional[str]]:
        """Map of every task id to its current status.

        Raises:
            PersistenceError: If the query fails
        """
        try:
            with get_session() as session:
                rows = session.execute(select(TaskModel.id, TaskModel.task_status))
                return {task_id: status for task_id, status in rows}
        except SQLAlchemyError as e:
            logger.error(f"Error reading task statuses: {e}", exc_info=True)
            raise PersistenceError(f"Failed to read task statuses: {e}") from e
