"""Construction and validation of studentml records.

Everything in this module is pure: the ObjectFactory turns raw client input
into persistence records (raising a typed error from
``studentml.core.errors`` on the first invalid value) and the
``get_*_from_db_row`` mappers rebuild read objects from flat rows. Nothing
here touches storage.

Usage:
    factory = ObjectFactory()
    row = factory.create_project("bob", "myclass", "numbers", "weather", "en", [
        {"name": "temperature", "type": "number"},
        {"name": "sky", "type": "multichoice", "choices": ["sunny", "cloudy"]},
    ])
    training = factory.create_number_training(row.id, [21.5, 1], "picnic")
"""

from __future__ import annotations

import re
import uuid
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

import numpy as np

from studentml.core import errors
from studentml.core.config import LimitsConfig, ServicesConfig, TenantDefaultsConfig
from studentml.core.schema import (
    BluemixCredentials,
    ClassTenant,
    ClassTenantRow,
    Field,
    FieldRow,
    FieldSpec,
    FieldType,
    ImageTraining,
    NumberTraining,
    Project,
    ProjectRow,
    ProjectType,
    ServiceType,
    TextTraining,
    Training,
)


IdGenerator = Callable[[], str]

_LABEL_UNSAFE = re.compile(r"[^A-Za-z0-9]")
_TEXT_WHITESPACE = re.compile(r"[\t\r\n]")
_CLASS_ID = re.compile(r"[a-z]{2,36}")
_CONV_USERNAME = re.compile(r"[A-Za-z0-9]{32,36}")

VISREC_APIKEY_LENGTH = 40
CONV_PASSWORD_MIN_LENGTH = 12


def default_id_generator() -> str:
    """Time-based unique id, as used for every stored record."""
    return str(uuid.uuid1())


# Label helpers

def create_label(raw: str) -> str:
    """Make a storage-safe label token, replacing anything not alphanumeric with '_'."""
    return _LABEL_UNSAFE.sub("_", raw)


def get_labels_from_list(labels: Optional[str]) -> List[str]:
    """Split a comma-joined label string, trimming items and dropping empty ones."""
    if not labels:
        return []
    return [item.strip() for item in labels.split(",") if item.strip()]


def get_label_list_from_array(labels: Sequence[str], capacity: int = 500) -> str:
    """Join labels for storage in the fixed-width project labels column.

    Raises:
        LabelCapacityExceeded: If the joined string does not fit in the column
    """
    joined = ",".join(labels)
    if len(joined) > capacity:
        raise errors.LabelCapacityExceeded()
    return joined


# Number helpers

def _is_finite_number(value: Any) -> bool:
    if isinstance(value, (bool, np.bool_)):
        return False
    if not isinstance(value, (int, float, np.integer, np.floating)):
        return False
    return bool(np.isfinite(value))


def get_number_data_csv(numbers: Sequence[float]) -> str:
    """Serialize number training data for the numberdata column."""
    return ",".join(repr(float(number)) for number in numbers)


def get_number_data_from_csv(numberdata: Optional[str]) -> tuple:
    if not numberdata:
        return ()
    return tuple(float(item) for item in numberdata.split(",") if item.strip())


class ObjectFactory:
    """Validates raw input and builds persistence records.

    Args:
        limits: Validation limits (defaults to LimitsConfig())
        services: Third-party service endpoints used for credentials
        tenant_defaults: Policy given to newly created class tenants
        id_generator: Callable returning a fresh unique id per record
    """

    def __init__(
        self,
        limits: Optional[LimitsConfig] = None,
        services: Optional[ServicesConfig] = None,
        tenant_defaults: Optional[TenantDefaultsConfig] = None,
        id_generator: Optional[IdGenerator] = None,
    ):
        self.limits = limits or LimitsConfig()
        self.services = services or ServicesConfig()
        self.tenant_defaults = tenant_defaults or TenantDefaultsConfig()
        self._new_id = id_generator or default_id_generator

    @classmethod
    def from_config(cls, config: Any, id_generator: Optional[IdGenerator] = None) -> ObjectFactory:
        """Create a factory from a StudentMLConfig."""
        return cls(
            limits=config.limits,
            services=config.services,
            tenant_defaults=config.tenant_defaults,
            id_generator=id_generator,
        )

    # Projects

    def create_project(
        self,
        userid: str,
        classid: str,
        project_type: Union[str, ProjectType],
        name: str,
        language: Optional[str],
        fields: Optional[Sequence[Union[FieldSpec, Mapping[str, Any]]]] = None,
    ) -> ProjectRow:
        """Build a project record, with field records for numbers projects."""
        if not userid or not classid or not name:
            raise errors.MissingAttribute()

        ptype = self._parse_project_type(project_type)

        if ptype is ProjectType.TEXT and language not in self.limits.supported_languages:
            raise errors.UnsupportedLanguage()

        specs = [
            spec if isinstance(spec, FieldSpec) else FieldSpec.from_dict(spec)
            for spec in (fields or [])
        ]

        projectid = self._new_id()

        if ptype is ProjectType.NUMBERS:
            if len(specs) > self.limits.max_fields:
                raise errors.TooManyFields()
            field_rows = tuple(
                self._create_field(projectid, userid, classid, spec) for spec in specs
            )
        else:
            if specs:
                raise errors.FieldsNotSupported()
            field_rows = ()

        return ProjectRow(
            id=projectid,
            userid=userid,
            classid=classid,
            typeid=ptype.typeid,
            name=name,
            language=language or "en",
            labels="",
            numfields=len(field_rows),
            fields=field_rows,
        )

    @staticmethod
    def _parse_project_type(project_type: Union[str, ProjectType]) -> ProjectType:
        if isinstance(project_type, ProjectType):
            return project_type
        try:
            return ProjectType.from_name(project_type)
        except ValueError:
            raise errors.InvalidProjectType(project_type) from None

    def _create_field(
        self,
        projectid: str,
        userid: str,
        classid: str,
        spec: FieldSpec,
    ) -> FieldRow:
        if not spec.name:
            raise errors.MissingAttribute()

        try:
            ftype = FieldType(spec.type)
        except ValueError:
            raise errors.InvalidFieldType() from None

        choices = None
        if ftype is FieldType.MULTICHOICE:
            choices = ",".join(self._validate_choices(spec.choices))

        return FieldRow(
            id=self._new_id(),
            projectid=projectid,
            userid=userid,
            classid=classid,
            name=spec.name,
            fieldtype=ftype.typeid,
            choices=choices,
        )

    def _validate_choices(self, choices: Optional[Sequence[Any]]) -> List[str]:
        limits = self.limits
        if not choices or len(choices) < limits.min_choices:
            raise errors.NotEnoughChoices()
        if len(choices) > limits.max_choices:
            raise errors.TooManyChoices()

        for choice in choices:
            if (
                not isinstance(choice, str)
                or not choice.strip()
                or choice[0].isdigit()
                or "," in choice
                or len(choice) > limits.max_choice_length
            ):
                raise errors.InvalidChoice()

        return list(choices)

    # Training

    def create_text_training(
        self,
        projectid: str,
        data: Optional[str],
        label: Optional[str] = None,
    ) -> TextTraining:
        if not projectid or not data or not isinstance(data, str):
            raise errors.MissingAttribute()

        return TextTraining(
            id=self._new_id(),
            projectid=projectid,
            textdata=_TEXT_WHITESPACE.sub(" ", data),
            label=label or None,
        )

    def create_number_training(
        self,
        projectid: str,
        data: Optional[Sequence[Any]],
        label: Optional[str] = None,
        num_fields: Optional[int] = None,
    ) -> NumberTraining:
        """Build a numeric training example.

        Args:
            projectid: Owning project
            data: One number per project field
            label: Optional label
            num_fields: Field count of the owning project, when known
        """
        if not projectid or data is None or isinstance(data, (str, bytes)) or len(data) == 0:
            raise errors.MissingAttribute()

        if not all(_is_finite_number(item) for item in data):
            raise errors.NonNumericData()
        if len(data) > self.limits.max_training_items:
            raise errors.TooManyItems()
        if num_fields is not None and len(data) != num_fields:
            raise errors.NumberDataMismatch()

        return NumberTraining(
            id=self._new_id(),
            projectid=projectid,
            numberdata=tuple(float(item) for item in data),
            label=label or None,
        )

    def create_image_training(
        self,
        projectid: str,
        data: Optional[str],
        label: Optional[str] = None,
    ) -> ImageTraining:
        if not projectid or not data or not isinstance(data, str):
            raise errors.MissingAttribute()
        if len(data) > self.limits.max_image_url_length:
            raise errors.UrlTooLong(self.limits.max_image_url_length)

        return ImageTraining(
            id=self._new_id(),
            projectid=projectid,
            imageurl=data,
            label=label or None,
        )

    def create_training(
        self,
        project_type: ProjectType,
        projectid: str,
        data: Any,
        label: Optional[str] = None,
    ) -> Training:
        """Build a training example of the shape the project type requires."""
        if project_type is ProjectType.TEXT:
            return self.create_text_training(projectid, data, label)
        if project_type is ProjectType.NUMBERS:
            return self.create_number_training(projectid, data, label)
        if project_type is ProjectType.IMAGES:
            return self.create_image_training(projectid, data, label)
        raise errors.InvalidProjectType(project_type)

    # Credentials

    def create_bluemix_credentials(
        self,
        servicetype: Optional[Union[str, ServiceType]],
        classid: str,
        apikey: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
    ) -> BluemixCredentials:
        if not servicetype or not classid:
            raise errors.MissingAttribute()

        try:
            service = ServiceType(servicetype)
        except ValueError:
            raise errors.InvalidServiceType() from None

        if service is ServiceType.VISREC:
            if not apikey:
                raise errors.MissingAttribute()
            if len(apikey) < VISREC_APIKEY_LENGTH:
                raise errors.InvalidApiKey()
            username = apikey[:20]
            password = apikey[20:40]
            url = self.services.visrec_url
        else:
            if not username or not password:
                raise errors.MissingAttribute()
            if not _CONV_USERNAME.fullmatch(username) or len(password) < CONV_PASSWORD_MIN_LENGTH:
                raise errors.InvalidCredentials()
            url = self.services.conv_url

        return BluemixCredentials(
            id=self._new_id(),
            classid=classid,
            servicetype=service,
            url=url,
            username=username,
            password=password,
        )

    # Tenants

    def create_class_tenant(self, classid: Optional[str]) -> ClassTenantRow:
        """Build the default policy record for a class."""
        if not classid:
            raise errors.MissingClassId()
        if not _CLASS_ID.fullmatch(classid):
            raise errors.InvalidClassId()

        defaults = self.tenant_defaults
        return ClassTenantRow(
            id=classid,
            projecttypes=",".join(defaults.project_types),
            ismanaged=int(defaults.is_managed),
            maxusers=defaults.max_users,
            maxprojectsperuser=defaults.max_projects_per_user,
            textclassifiersexpiry=defaults.text_classifier_expiry_hours,
            imageclassifiersexpiry=defaults.image_classifier_expiry_hours,
        )


# Row -> object mappers

def _value(row: Mapping[str, Any], key: str, default: Any = None) -> Any:
    """Read a column from a dict or sqlite3.Row, treating NULL as missing."""
    if key not in row.keys():
        return default
    value = row[key]
    return default if value is None else value


def get_field_from_db_row(row: Mapping[str, Any]) -> Field:
    ftype = FieldType.from_typeid(row["fieldtype"])
    choices: List[str] = []
    if ftype is FieldType.MULTICHOICE:
        choices = get_labels_from_list(_value(row, "choices"))

    return Field(
        id=row["id"],
        projectid=_value(row, "projectid", ""),
        userid=_value(row, "userid", ""),
        classid=_value(row, "classid", ""),
        name=row["name"],
        type=ftype,
        choices=choices,
    )


def get_project_from_db_row(
    row: Mapping[str, Any],
    fields: Optional[Sequence[Mapping[str, Any]]] = None,
) -> Project:
    """Rebuild a Project from a projects row and (optionally) its field rows."""
    if fields is None:
        fields = _value(row, "fields", ())

    return Project(
        id=row["id"],
        userid=row["userid"],
        classid=row["classid"],
        type=ProjectType.from_typeid(row["typeid"]),
        name=row["name"],
        language=_value(row, "language") or "en",
        labels=get_labels_from_list(_value(row, "labels")),
        numfields=_value(row, "numfields", 0),
        fields=[get_field_from_db_row(field_row) for field_row in fields],
    )


def get_text_training_from_db_row(row: Mapping[str, Any]) -> TextTraining:
    return TextTraining(
        id=row["id"],
        projectid=_value(row, "projectid", ""),
        textdata=row["textdata"],
        label=_value(row, "label"),
    )


def get_number_training_from_db_row(row: Mapping[str, Any]) -> NumberTraining:
    return NumberTraining(
        id=row["id"],
        projectid=_value(row, "projectid", ""),
        numberdata=get_number_data_from_csv(row["numberdata"]),
        label=_value(row, "label"),
    )


def get_image_training_from_db_row(row: Mapping[str, Any]) -> ImageTraining:
    return ImageTraining(
        id=row["id"],
        projectid=_value(row, "projectid", ""),
        imageurl=row["imageurl"],
        label=_value(row, "label"),
    )


_TRAINING_MAPPERS: Dict[ProjectType, Callable[[Mapping[str, Any]], Training]] = {
    ProjectType.TEXT: get_text_training_from_db_row,
    ProjectType.NUMBERS: get_number_training_from_db_row,
    ProjectType.IMAGES: get_image_training_from_db_row,
}


def get_training_from_db_row(project_type: ProjectType, row: Mapping[str, Any]) -> Training:
    return _TRAINING_MAPPERS[project_type](row)


def get_db_row_from_training(training: Training) -> Dict[str, Any]:
    """Flatten a training example into column values."""
    row: Dict[str, Any] = {
        "id": training.id,
        "projectid": training.projectid,
        "label": training.label,
    }
    if isinstance(training, TextTraining):
        row["textdata"] = training.textdata
    elif isinstance(training, NumberTraining):
        row["numberdata"] = get_number_data_csv(training.numberdata)
    elif isinstance(training, ImageTraining):
        row["imageurl"] = training.imageurl
    else:
        raise TypeError(f"Not a training example: {training!r}")
    return row


def get_class_from_db_row(row: Mapping[str, Any]) -> ClassTenant:
    return ClassTenant(
        id=row["id"],
        supported_project_types=frozenset(
            ProjectType.from_name(name) for name in get_labels_from_list(row["projecttypes"])
        ),
        is_managed=bool(row["ismanaged"]),
        max_users=row["maxusers"],
        max_projects_per_user=row["maxprojectsperuser"],
        text_classifier_expiry=row["textclassifiersexpiry"],
        image_classifier_expiry=row["imageclassifiersexpiry"],
    )


def get_credentials_from_db_row(row: Mapping[str, Any]) -> BluemixCredentials:
    return BluemixCredentials(
        id=row["id"],
        classid=row["classid"],
        servicetype=ServiceType(row["servicetype"]),
        url=row["url"],
        username=row["username"],
        password=row["password"],
    )
