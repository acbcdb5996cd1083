"""Records and enums describing student ML projects.

Two shapes exist for projects, fields and class tenants:

- ``*Row`` records are flat persistence records, produced by the
  ObjectFactory and written by the stores.
- The plain records (``Project``, ``Field``, ``ClassTenant``) are the read
  objects, rebuilt from rows by the row mappers in ``studentml.core.objects``.

Training examples have a single shape per project type; ``Training`` is the
union of the three.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple, Union


class ProjectType(Enum):
    """Kind of data a project is trained on."""

    TEXT = "text"
    NUMBERS = "numbers"
    IMAGES = "images"

    @property
    def typeid(self) -> int:
        return _PROJECT_TYPEIDS[self]

    @classmethod
    def from_typeid(cls, typeid: int) -> ProjectType:
        for project_type, known in _PROJECT_TYPEIDS.items():
            if known == typeid:
                return project_type
        raise ValueError(f"Unknown project typeid: {typeid}")

    @classmethod
    def from_name(cls, name: str) -> ProjectType:
        return cls(name)


_PROJECT_TYPEIDS = {
    ProjectType.TEXT: 1,
    ProjectType.NUMBERS: 2,
    ProjectType.IMAGES: 3,
}


class FieldType(Enum):
    """Kind of input a numbers-project field accepts."""

    NUMBER = "number"
    MULTICHOICE = "multichoice"

    @property
    def typeid(self) -> int:
        return 1 if self is FieldType.NUMBER else 2

    @classmethod
    def from_typeid(cls, typeid: int) -> FieldType:
        if typeid == 1:
            return cls.NUMBER
        if typeid == 2:
            return cls.MULTICHOICE
        raise ValueError(f"Unknown field typeid: {typeid}")


class ServiceType(Enum):
    """Third-party classifier services a class can hold credentials for."""

    VISREC = "visrec"  # visual recognition
    CONV = "conv"  # conversation (text)


@dataclass(frozen=True)
class FieldSpec:
    """A field as described by a client creating a numbers project."""

    name: str
    type: str
    choices: Optional[List[str]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> FieldSpec:
        return cls(
            name=data.get("name", ""),
            type=data.get("type", ""),
            choices=data.get("choices"),
        )


@dataclass(frozen=True)
class FieldRow:
    """Persistence record for a numbers-project field."""

    id: str
    projectid: str
    userid: str
    classid: str
    name: str
    fieldtype: int
    choices: Optional[str] = None


@dataclass(frozen=True)
class ProjectRow:
    """Persistence record for a project and its fields."""

    id: str
    userid: str
    classid: str
    typeid: int
    name: str
    language: str
    labels: str
    numfields: int
    fields: Tuple[FieldRow, ...] = ()

    def to_db_dict(self) -> Dict[str, Any]:
        """Column values for the projects table (fields are stored separately)."""
        data = asdict(self)
        data.pop("fields")
        return data


@dataclass(frozen=True)
class Field:
    """A numeric or multichoice input dimension of a numbers project."""

    id: str
    projectid: str
    userid: str
    classid: str
    name: str
    type: FieldType
    choices: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class Project:
    """A student's ML task definition."""

    id: str
    userid: str
    classid: str
    type: ProjectType
    name: str
    language: str
    labels: List[str] = field(default_factory=list)
    numfields: int = 0
    fields: List[Field] = field(default_factory=list)


@dataclass(frozen=True)
class TextTraining:
    id: str
    projectid: str
    textdata: str
    label: Optional[str] = None


@dataclass(frozen=True)
class NumberTraining:
    id: str
    projectid: str
    numberdata: Tuple[float, ...]
    label: Optional[str] = None


@dataclass(frozen=True)
class ImageTraining:
    id: str
    projectid: str
    imageurl: str
    label: Optional[str] = None


Training = Union[TextTraining, NumberTraining, ImageTraining]


@dataclass(frozen=True)
class ClassTenantRow:
    """Persistence record for a class (tenant) policy."""

    id: str
    projecttypes: str
    ismanaged: int
    maxusers: int
    maxprojectsperuser: int
    textclassifiersexpiry: int
    imageclassifiersexpiry: int

    def to_db_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ClassTenant:
    """Policy limits for an educational group."""

    id: str
    supported_project_types: FrozenSet[ProjectType]
    is_managed: bool
    max_users: int
    max_projects_per_user: int
    text_classifier_expiry: int  # hours
    image_classifier_expiry: int  # hours


@dataclass(frozen=True)
class BluemixCredentials:
    id: str
    classid: str
    servicetype: ServiceType
    url: str
    username: str
    password: str

    def to_db_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["servicetype"] = self.servicetype.value
        return data

    def __repr__(self) -> str:
        return (
            f"BluemixCredentials(id={self.id}, classid={self.classid}, "
            f"servicetype={self.servicetype.value}, username={self.username})"
        )


@dataclass(frozen=True)
class PagingOptions:
    """Offset + limit window over an ordered row set."""

    start: int = 0
    limit: int = 50

    def __post_init__(self) -> None:
        if self.start < 0:
            raise ValueError(f"Paging start must not be negative: {self.start}")
        if self.limit < 0:
            raise ValueError(f"Paging limit must not be negative: {self.limit}")


DEFAULT_PAGING = PagingOptions()
