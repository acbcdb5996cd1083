"""Core components: records, validation and configuration."""

from studentml.core.config import StudentMLConfig
from studentml.core.objects import ObjectFactory
from studentml.core.schema import PagingOptions, Project, ProjectType

__all__ = [
    "StudentMLConfig",
    "ObjectFactory",
    "PagingOptions",
    "Project",
    "ProjectType",
]
