"""
studentml: storage and validation for students' machine learning projects

Manages projects, their fields and labels, the training examples attached
to them, class policies and third-party service credentials.
"""

__version__ = "0.1.0"

from studentml.core.config import StudentMLConfig
from studentml.core.objects import ObjectFactory
from studentml.core.schema import PagingOptions, ProjectType
from studentml.persistence import (
    ProjectStore,
    StudentMLDatabase,
    TenantPolicyStore,
    TrainingStore,
)

__all__ = [
    "StudentMLConfig",
    "ObjectFactory",
    "PagingOptions",
    "ProjectType",
    "ProjectStore",
    "StudentMLDatabase",
    "TenantPolicyStore",
    "TrainingStore",
]
