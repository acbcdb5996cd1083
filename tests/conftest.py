"""
Shared pytest fixtures for studentml tests.
"""

import itertools
import uuid

import pytest

from studentml.core.config import StudentMLConfig
from studentml.core.objects import ObjectFactory
from studentml.persistence.database import StudentMLDatabase
from studentml.persistence.project_store import ProjectStore
from studentml.persistence.tenant_store import TenantPolicyStore
from studentml.persistence.training_store import TrainingStore


class SequentialIds:
    """Deterministic id generator: id-0001, id-0002, ..."""

    def __init__(self, prefix: str = "id"):
        self._prefix = prefix
        self._counter = itertools.count(1)

    def __call__(self) -> str:
        return f"{self._prefix}-{next(self._counter):04d}"


@pytest.fixture
def id_generator():
    return SequentialIds()


@pytest.fixture
def factory(id_generator):
    """ObjectFactory with default limits and deterministic ids."""
    return ObjectFactory(id_generator=id_generator)


@pytest.fixture
def temp_db(tmp_path):
    """Create a temporary database for testing."""
    db = StudentMLDatabase(tmp_path / "test_studentml.db")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def training_store(temp_db):
    return TrainingStore(temp_db)


@pytest.fixture
def project_store(temp_db, factory):
    return ProjectStore(temp_db, factory)


@pytest.fixture
def tenant_store(temp_db, factory):
    return TenantPolicyStore(temp_db, factory)


@pytest.fixture
def projectid():
    return str(uuid.uuid1())


@pytest.fixture
def sample_config():
    """Sample configuration dictionary for testing."""
    return {
        "framework": {"name": "studentml", "version": "0.1.0"},
        "limits": {
            "max_fields": 6,
            "max_training_items": 6,
            "supported_languages": ["en", "fr"],
        },
        "tenant_defaults": {
            "max_users": 30,
        },
        "database": {
            "path": "data/test.db",
        },
    }


@pytest.fixture
def studentml_config(sample_config):
    return StudentMLConfig.from_dict(sample_config)


@pytest.fixture
def make_text_items():
    """Build bulk-insert items, grouped by label, and the labels used."""
    def make(num_labels, per_label):
        items = []
        labels = []
        for _ in range(num_labels):
            label = str(uuid.uuid1())
            labels.append(label)
            for _ in range(per_label):
                items.append({"textdata": str(uuid.uuid1()), "label": label})
        return items, labels

    return make
