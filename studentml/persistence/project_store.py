"""Project and field persistence for studentml."""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import List, Optional

from studentml.core.objects import (
    ObjectFactory,
    get_label_list_from_array,
    get_labels_from_list,
    get_project_from_db_row,
)
from studentml.core.schema import Project, ProjectRow
from studentml.persistence.database import StudentMLDatabase
from studentml.persistence.training_store import TRAINING_TABLES

logger = logging.getLogger(__name__)


class ProjectStore:
    """Stores projects together with the fields of numbers projects.

    Usage:
        projects = ProjectStore(db)
        row = factory.create_project("bob", "myclass", "text", "feelings", "en", [])
        projects.store_project(row)
        projects.add_label_to_project(row.id, "happy")
        project = projects.get_project(row.id)
    """

    def __init__(self, db: StudentMLDatabase, factory: Optional[ObjectFactory] = None):
        self.db = db
        self.factory = factory or ObjectFactory()

    def store_project(self, project: ProjectRow) -> Project:
        """Save a project and its fields in one transaction."""
        field_rows = [asdict(field_row) for field_row in project.fields]
        with self.db.transaction():
            self.db.insert_one("projects", project.to_db_dict())
            self.db.insert_many("numbersprojectsfields", field_rows)
        logger.info(
            "Stored project %s for user %s in class %s",
            project.id, project.userid, project.classid,
        )
        return get_project_from_db_row(project.to_db_dict(), field_rows)

    def get_project(self, projectid: str) -> Optional[Project]:
        rows = self.db.select("projects", {"id": projectid}, limit=1)
        if not rows:
            return None
        return self._with_fields(rows[0])

    def get_projects_by_user_id(self, classid: str, userid: str) -> List[Project]:
        rows = self.db.select("projects", {"classid": classid, "userid": userid})
        return [self._with_fields(row) for row in rows]

    def get_projects_by_class_id(self, classid: str) -> List[Project]:
        rows = self.db.select("projects", {"classid": classid})
        return [self._with_fields(row) for row in rows]

    def count_projects_by_user_id(self, classid: str, userid: str) -> int:
        return self.db.count("projects", {"classid": classid, "userid": userid})

    # Labels

    def add_label_to_project(self, projectid: str, label: str) -> List[str]:
        """Append a label to a project's label list if it isn't there already.

        Returns:
            The project's labels after the change

        Raises:
            LabelCapacityExceeded: If the label list would no longer fit
            KeyError: If the project does not exist
        """
        def add(labels: List[str]) -> List[str]:
            return labels if label in labels else labels + [label]

        return self._update_labels(projectid, add)

    def remove_label_from_project(self, projectid: str, label: str) -> List[str]:
        return self._update_labels(
            projectid, lambda labels: [item for item in labels if item != label]
        )

    def replace_label_in_project(self, projectid: str, before: str, after: str) -> List[str]:
        def replace(labels: List[str]) -> List[str]:
            updated: List[str] = []
            for item in labels:
                item = after if item == before else item
                if item not in updated:
                    updated.append(item)
            return updated

        return self._update_labels(projectid, replace)

    # Deletes

    def delete_entire_project(self, projectid: str) -> bool:
        """Delete a project with its fields and all of its training data.

        Returns:
            True if the project existed
        """
        with self.db.transaction():
            for table in TRAINING_TABLES.values():
                self.db.delete_where(table, {"projectid": projectid})
            self.db.delete_where("numbersprojectsfields", {"projectid": projectid})
            deleted = self.db.delete_where("projects", {"id": projectid})
        logger.info("Deleted project %s", projectid)
        return deleted > 0

    def delete_projects_by_class_id(self, classid: str) -> int:
        """Delete every project in a class, with fields and training data.

        Returns:
            Number of projects deleted
        """
        with self.db.transaction():
            rows = self.db.select("projects", {"classid": classid}, columns=["id"])
            for row in rows:
                self.delete_entire_project(row["id"])
        return len(rows)

    # Helper methods

    def _with_fields(self, row) -> Project:
        fields = self.db.select("numbersprojectsfields", {"projectid": row["id"]})
        return get_project_from_db_row(row, fields)

    def _update_labels(self, projectid: str, change) -> List[str]:
        with self.db.transaction():
            rows = self.db.select("projects", {"id": projectid}, columns=["labels"], limit=1)
            if not rows:
                raise KeyError(f"Project not found: {projectid}")
            labels = change(get_labels_from_list(rows[0]["labels"]))
            self.db.update_where(
                "projects",
                {"labels": get_label_list_from_array(labels, self.factory.limits.max_labels_length)},
                {"id": projectid},
            )
        return labels
