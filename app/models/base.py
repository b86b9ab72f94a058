from datetime import datetime, timezone
from typing import Any, Optional

from bson import ObjectId
from pydantic import BaseModel, Field, ConfigDict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PyObjectId(ObjectId):
    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: Any):
        from pydantic_core import core_schema

        return core_schema.no_info_plain_validator_function(cls.validate)

    @classmethod
    def validate(cls, value: Any) -> ObjectId:
        if isinstance(value, ObjectId):
            return value
        if isinstance(value, str) and ObjectId.is_valid(value):
            return ObjectId(value)
        raise ValueError("Invalid ObjectId")


class MongoModel(BaseModel):
    id: PyObjectId = Field(default_factory=PyObjectId, alias="_id")
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
        from_attributes=True
    )


# Cross-cutting traits. Each entity opts in explicitly by listing the mixins
# it needs, instead of a shared schema being patched at import time.

class OwnedMixin(BaseModel):
    """Document created by, and belonging to, one user."""
    created_by: PyObjectId


class ArchivableMixin(BaseModel):
    """Soft-archive flag; archived documents are hidden from active lookups."""
    archived: bool = False


class CompanyScopedMixin(BaseModel):
    """Document attached to the company of its creator, if any."""
    company_id: Optional[PyObjectId] = None


def to_object_id(value: Any) -> Optional[ObjectId]:
    """ObjectId for a valid id or hex string, None for anything else."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None
