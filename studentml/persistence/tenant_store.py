"""Class (tenant) policy and service credential persistence."""

from __future__ import annotations

import logging
from typing import List, Optional, Union

from studentml.core.objects import (
    ObjectFactory,
    get_class_from_db_row,
    get_credentials_from_db_row,
)
from studentml.core.schema import BluemixCredentials, ClassTenant, ClassTenantRow, ServiceType
from studentml.persistence.database import StudentMLDatabase

logger = logging.getLogger(__name__)


class TenantPolicyStore:
    """Reads and writes class policies and the credentials a class owns.

    Usage:
        tenants = TenantPolicyStore(db)
        tenants.store_class_tenant(factory.create_class_tenant("myclass"))
        policy = tenants.get_class_tenant("myclass")
    """

    def __init__(self, db: StudentMLDatabase, factory: Optional[ObjectFactory] = None):
        self.db = db
        self.factory = factory or ObjectFactory()

    # Class policy

    def store_class_tenant(self, tenant: ClassTenantRow) -> ClassTenant:
        """Save a class policy, replacing any stored policy for the same class."""
        self.db.upsert("tenants", tenant.to_db_dict())
        logger.info("Stored policy for class %s", tenant.id)
        return get_class_from_db_row(tenant.to_db_dict())

    def get_class_tenant(self, classid: str) -> ClassTenant:
        """Get a class policy, falling back to the default policy if none is stored."""
        rows = self.db.select("tenants", {"id": classid}, limit=1)
        if rows:
            return get_class_from_db_row(rows[0])
        return get_class_from_db_row(self.factory.create_class_tenant(classid).to_db_dict())

    def has_class_tenant(self, classid: str) -> bool:
        return self.db.count("tenants", {"id": classid}) > 0

    def modify_class_tenant_expiries(
        self,
        classid: str,
        text_classifier_expiry: int,
        image_classifier_expiry: int,
    ) -> ClassTenant:
        """Change how long (in hours) a class's classifiers are kept.

        Classes without a stored policy get the default policy with the new
        expiries.
        """
        for hours in (text_classifier_expiry, image_classifier_expiry):
            if isinstance(hours, bool) or not isinstance(hours, int) or hours < 1:
                raise ValueError(f"Classifier expiry must be a positive number of hours: {hours}")

        values = {
            "textclassifiersexpiry": text_classifier_expiry,
            "imageclassifiersexpiry": image_classifier_expiry,
        }
        with self.db.transaction():
            if not self.has_class_tenant(classid):
                self.db.insert_one("tenants", self.factory.create_class_tenant(classid).to_db_dict())
            self.db.update_where("tenants", values, {"id": classid})

        return self.get_class_tenant(classid)

    def delete_class_tenant(self, classid: str) -> int:
        return self.db.delete_where("tenants", {"id": classid})

    # Credentials

    def store_bluemix_credentials(self, credentials: BluemixCredentials) -> BluemixCredentials:
        self.db.insert_one("bluemixcredentials", credentials.to_db_dict())
        logger.info(
            "Stored %s credentials %s for class %s",
            credentials.servicetype.value, credentials.id, credentials.classid,
        )
        return credentials

    def get_bluemix_credentials(
        self,
        classid: str,
        service: Union[str, ServiceType],
    ) -> List[BluemixCredentials]:
        rows = self.db.select(
            "bluemixcredentials",
            {"classid": classid, "servicetype": ServiceType(service).value},
        )
        return [get_credentials_from_db_row(row) for row in rows]

    def get_bluemix_credentials_by_id(self, credentialsid: str) -> Optional[BluemixCredentials]:
        rows = self.db.select("bluemixcredentials", {"id": credentialsid}, limit=1)
        if not rows:
            return None
        return get_credentials_from_db_row(rows[0])

    def count_bluemix_credentials(self, classid: str) -> int:
        return self.db.count("bluemixcredentials", {"classid": classid})

    def delete_bluemix_credentials(self, credentialsid: str) -> int:
        return self.db.delete_where("bluemixcredentials", {"id": credentialsid})

    def delete_bluemix_credentials_by_class_id(self, classid: str) -> int:
        deleted = self.db.delete_where("bluemixcredentials", {"classid": classid})
        logger.info("Deleted %d credentials for class %s", deleted, classid)
        return deleted
