"""Training data persistence for studentml.

Stores the labelled examples attached to projects: text for text projects,
number vectors for numbers projects and image URLs for image projects.
All operations are scoped by project id and return rows in insertion order.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Tuple

import numpy as np

from studentml.core.objects import (
    ObjectFactory,
    get_db_row_from_training,
    get_training_from_db_row,
)
from studentml.core.schema import (
    DEFAULT_PAGING,
    ImageTraining,
    NumberTraining,
    PagingOptions,
    ProjectType,
    TextTraining,
    Training,
)
from studentml.persistence.database import StudentMLDatabase

logger = logging.getLogger(__name__)


# Table holding each project type's training examples
TRAINING_TABLES: Dict[ProjectType, str] = {
    ProjectType.TEXT: "texttraining",
    ProjectType.NUMBERS: "numbertraining",
    ProjectType.IMAGES: "imagetraining",
}


class TrainingStore:
    """Training data store backed by a StudentMLDatabase.

    Every example is validated by the ObjectFactory before it is written;
    bulk inserts and label renames each run as a single transaction.

    Usage:
        store = TrainingStore(db)
        store.bulk_store_text_training(projectid, [
            {"textdata": "I love it", "label": "happy"},
            {"textdata": "Go away", "label": "sad"},
        ])
        counts = store.count_text_training_by_label(projectid)
        page = store.get_text_training(projectid, PagingOptions(start=0, limit=10))
    """

    def __init__(self, db: StudentMLDatabase, factory: Optional[ObjectFactory] = None):
        self.db = db
        self.factory = factory or ObjectFactory()

    # Text training

    def store_text_training(
        self,
        projectid: str,
        text: str,
        label: Optional[str] = None,
    ) -> TextTraining:
        return self._store(self.factory.create_text_training(projectid, text, label))

    def bulk_store_text_training(
        self,
        projectid: str,
        items: Sequence[Mapping[str, Any]],
    ) -> List[TextTraining]:
        """Store many text examples at once.

        Args:
            projectid: Owning project
            items: Mappings with "textdata" and optional "label"
        """
        return self._bulk_store(ProjectType.TEXT, [
            self.factory.create_text_training(projectid, item.get("textdata"), item.get("label"))
            for item in items
        ])

    def get_text_training(
        self,
        projectid: str,
        paging: PagingOptions = DEFAULT_PAGING,
    ) -> List[TextTraining]:
        return self._get(ProjectType.TEXT, projectid, paging)

    def get_text_training_by_label(
        self,
        projectid: str,
        label: str,
        paging: PagingOptions = DEFAULT_PAGING,
    ) -> List[TextTraining]:
        return self._get(ProjectType.TEXT, projectid, paging, label=label)

    def count_text_training(self, projectid: str) -> int:
        return self.count_training(ProjectType.TEXT, projectid)

    def count_text_training_by_label(self, projectid: str) -> Dict[str, int]:
        return self.count_training_by_label(ProjectType.TEXT, projectid)

    def rename_text_training_label(self, projectid: str, before: str, after: str) -> int:
        """Relabel every text example labelled `before` as `after`.

        Runs as a single UPDATE statement, so other connections see either
        none or all of the renamed rows.

        Returns:
            Number of examples renamed
        """
        renamed = self.db.update_where(
            TRAINING_TABLES[ProjectType.TEXT],
            {"label": after},
            {"projectid": projectid, "label": before},
        )
        logger.info(
            "Renamed label %r to %r on %d text examples in project %s",
            before, after, renamed, projectid,
        )
        return renamed

    def delete_text_training_by_project_id(self, projectid: str) -> int:
        return self.delete_training_by_project_id(ProjectType.TEXT, projectid)

    # Number training

    def store_number_training(
        self,
        projectid: str,
        numbers: Sequence[float],
        label: Optional[str] = None,
        num_fields: Optional[int] = None,
    ) -> NumberTraining:
        """Store one number example.

        Args:
            projectid: Owning project
            numbers: One number per project field
            label: Optional label
            num_fields: Expected field count. Defaults to the stored
                project's field count, read in the same transaction.
        """
        with self.db.transaction():
            if num_fields is None:
                num_fields = self._project_num_fields(projectid)
            return self._store(
                self.factory.create_number_training(projectid, numbers, label, num_fields)
            )

    def bulk_store_number_training(
        self,
        projectid: str,
        items: Sequence[Mapping[str, Any]],
        num_fields: Optional[int] = None,
    ) -> List[NumberTraining]:
        """Store many number examples at once.

        Args:
            projectid: Owning project
            items: Mappings with "numberdata" and optional "label"
            num_fields: Expected field count. Defaults to the stored
                project's field count, read in the same transaction.
        """
        with self.db.transaction():
            if num_fields is None:
                num_fields = self._project_num_fields(projectid)
            return self._bulk_store(ProjectType.NUMBERS, [
                self.factory.create_number_training(
                    projectid, item.get("numberdata"), item.get("label"), num_fields
                )
                for item in items
            ])

    def get_number_training(
        self,
        projectid: str,
        paging: PagingOptions = DEFAULT_PAGING,
    ) -> List[NumberTraining]:
        return self._get(ProjectType.NUMBERS, projectid, paging)

    def get_number_training_by_label(
        self,
        projectid: str,
        label: str,
        paging: PagingOptions = DEFAULT_PAGING,
    ) -> List[NumberTraining]:
        return self._get(ProjectType.NUMBERS, projectid, paging, label=label)

    def count_number_training(self, projectid: str) -> int:
        return self.count_training(ProjectType.NUMBERS, projectid)

    def count_number_training_by_label(self, projectid: str) -> Dict[str, int]:
        return self.count_training_by_label(ProjectType.NUMBERS, projectid)

    def delete_number_training_by_project_id(self, projectid: str) -> int:
        return self.delete_training_by_project_id(ProjectType.NUMBERS, projectid)

    def get_number_training_matrix(self, projectid: str) -> Tuple[np.ndarray, List[Optional[str]]]:
        """Get every number example of a project as a feature matrix.

        Returns:
            (matrix, labels) where matrix has one row per example and labels
            holds the matching label (None when unlabelled)
        """
        examples: List[NumberTraining] = self.get_training(ProjectType.NUMBERS, projectid)
        if not examples:
            return np.empty((0, 0), dtype=np.float64), []

        width = max(len(example.numberdata) for example in examples)
        matrix = np.full((len(examples), width), np.nan, dtype=np.float64)
        for idx, example in enumerate(examples):
            matrix[idx, :len(example.numberdata)] = example.numberdata

        return matrix, [example.label for example in examples]

    # Image training

    def store_image_training(
        self,
        projectid: str,
        imageurl: str,
        label: Optional[str] = None,
    ) -> ImageTraining:
        return self._store(self.factory.create_image_training(projectid, imageurl, label))

    def bulk_store_image_training(
        self,
        projectid: str,
        items: Sequence[Mapping[str, Any]],
    ) -> List[ImageTraining]:
        """Store many image examples at once.

        Args:
            projectid: Owning project
            items: Mappings with "imageurl" and optional "label"
        """
        return self._bulk_store(ProjectType.IMAGES, [
            self.factory.create_image_training(projectid, item.get("imageurl"), item.get("label"))
            for item in items
        ])

    def get_image_training(
        self,
        projectid: str,
        paging: PagingOptions = DEFAULT_PAGING,
    ) -> List[ImageTraining]:
        return self._get(ProjectType.IMAGES, projectid, paging)

    def get_image_training_by_label(
        self,
        projectid: str,
        label: str,
        paging: PagingOptions = DEFAULT_PAGING,
    ) -> List[ImageTraining]:
        return self._get(ProjectType.IMAGES, projectid, paging, label=label)

    def count_image_training(self, projectid: str) -> int:
        return self.count_training(ProjectType.IMAGES, projectid)

    def count_image_training_by_label(self, projectid: str) -> Dict[str, int]:
        return self.count_training_by_label(ProjectType.IMAGES, projectid)

    def delete_image_training_by_project_id(self, projectid: str) -> int:
        return self.delete_training_by_project_id(ProjectType.IMAGES, projectid)

    # Any project type

    def get_training(
        self,
        project_type: ProjectType,
        projectid: str,
        paging: Optional[PagingOptions] = None,
    ) -> List[Training]:
        """Get a project's examples, all of them when no paging is given."""
        return self._get(project_type, projectid, paging)

    def count_training(self, project_type: ProjectType, projectid: str) -> int:
        return self.db.count(TRAINING_TABLES[project_type], {"projectid": projectid})

    def count_training_by_label(self, project_type: ProjectType, projectid: str) -> Dict[str, int]:
        """Count examples per label. Unlabelled examples are not counted."""
        counts = self.db.count_grouped(
            TRAINING_TABLES[project_type], "label", {"projectid": projectid}
        )
        counts.pop(None, None)
        return counts

    def get_training_labels(
        self,
        projectid: str,
        project_type: ProjectType = ProjectType.TEXT,
    ) -> Set[str]:
        """Get the distinct labels currently used by a project's examples."""
        rows = self.db.select(
            TRAINING_TABLES[project_type],
            {"projectid": projectid},
            columns=["label"],
            distinct=True,
        )
        return {row["label"] for row in rows if row["label"] is not None}

    def delete_training_by_label(
        self,
        project_type: ProjectType,
        projectid: str,
        label: str,
    ) -> int:
        """Delete every example with the given label.

        Returns:
            Number of examples deleted
        """
        deleted = self.db.delete_where(
            TRAINING_TABLES[project_type],
            {"projectid": projectid, "label": label},
        )
        logger.info(
            "Deleted %d %s examples labelled %r from project %s",
            deleted, project_type.value, label, projectid,
        )
        return deleted

    def delete_training_by_project_id(self, project_type: ProjectType, projectid: str) -> int:
        """Delete every example of a project. Safe to call when there are none.

        Returns:
            Number of examples deleted
        """
        deleted = self.db.delete_where(
            TRAINING_TABLES[project_type], {"projectid": projectid}
        )
        logger.info(
            "Deleted %d %s examples from project %s", deleted, project_type.value, projectid
        )
        return deleted

    # Helper methods

    def _store(self, training: Training) -> Training:
        table = TRAINING_TABLES[_project_type_of(training)]
        self.db.insert_one(table, get_db_row_from_training(training))
        return training

    def _bulk_store(self, project_type: ProjectType, examples: List[Training]) -> List[Training]:
        # Every example is validated (by the caller's list comprehension)
        # before anything is written.
        inserted = self.db.insert_many(
            TRAINING_TABLES[project_type],
            [get_db_row_from_training(example) for example in examples],
        )
        logger.info("Stored %d %s examples", inserted, project_type.value)
        return examples

    def _project_num_fields(self, projectid: str) -> Optional[int]:
        """Field count of a stored numbers project, None if there is no such project."""
        rows = self.db.select(
            "projects",
            {"id": projectid, "typeid": ProjectType.NUMBERS.typeid},
            columns=["numfields"],
            limit=1,
        )
        return rows[0]["numfields"] if rows else None

    def _get(
        self,
        project_type: ProjectType,
        projectid: str,
        paging: Optional[PagingOptions],
        label: Optional[str] = None,
    ) -> List[Any]:
        where: Dict[str, Any] = {"projectid": projectid}
        if label is not None:
            where["label"] = label

        if paging is None:
            rows = self.db.select(TRAINING_TABLES[project_type], where)
        else:
            rows = self.db.select(
                TRAINING_TABLES[project_type],
                where,
                limit=paging.limit,
                offset=paging.start,
            )
        logger.debug(
            "Fetched %d %s examples from project %s", len(rows), project_type.value, projectid
        )
        return [get_training_from_db_row(project_type, row) for row in rows]


_TRAINING_TYPES: Dict[type, ProjectType] = {
    TextTraining: ProjectType.TEXT,
    NumberTraining: ProjectType.NUMBERS,
    ImageTraining: ProjectType.IMAGES,
}


def _project_type_of(training: Training) -> ProjectType:
    try:
        return _TRAINING_TYPES[type(training)]
    except KeyError:
        raise TypeError(f"Not a training example: {training!r}") from None
