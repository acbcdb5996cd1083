"""Persistence layer: SQLite database, training data, projects and class policy."""

from studentml.persistence.database import StudentMLDatabase
from studentml.persistence.training_store import TRAINING_TABLES, TrainingStore
from studentml.persistence.project_store import ProjectStore
from studentml.persistence.tenant_store import TenantPolicyStore

__all__ = [
    "StudentMLDatabase",
    "TRAINING_TABLES",
    "TrainingStore",
    "ProjectStore",
    "TenantPolicyStore",
]
