"""
Request Schemas

Pydantic models for the bodies accepted by POST /api/users and POST /api/items.
Defaults mirror what the stored documents look like; createdAt and the id
are assigned by database.py, never by the client.
"""

from typing import Any, List, Type, Union

from bson import ObjectId
from pydantic import BaseModel, Field, StrictFloat, StrictInt, StrictStr, field_validator
from pydantic import ValidationError as PydanticValidationError

from errors import ValidationError

USER_FIELDS_REQUIRED = "email and name are required"
ITEM_FIELDS_REQUIRED = "name, description, and numeric price are required"


class UserCreate(BaseModel):
    email: StrictStr = Field(..., min_length=1)
    name: StrictStr = Field(..., min_length=1)
    role: Any = "staff"

    @field_validator("role", mode="before")
    @classmethod
    def default_role(cls, v):
        return v or "staff"


class ItemCreate(BaseModel):
    name: StrictStr = Field(..., min_length=1)
    description: StrictStr = Field(..., min_length=1)
    # JSON numbers only: "8.5" and true are rejected
    price: Union[StrictInt, StrictFloat]
    category: Any = "Uncategorized"
    image: Any = ""
    badge: Any = None
    badgeColor: Any = None
    isLarge: bool = False
    # Only the required fields are type-checked; optional ones are stored as sent
    tags: List[Any] = Field(default_factory=list)

    @field_validator("category", mode="before")
    @classmethod
    def default_category(cls, v):
        return v or "Uncategorized"

    @field_validator("image", mode="before")
    @classmethod
    def default_image(cls, v):
        return v or ""

    @field_validator("badge", "badgeColor", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        return v or None

    @field_validator("isLarge", mode="before")
    @classmethod
    def truthy(cls, v):
        # Containers count as true even when empty
        if isinstance(v, (list, dict)):
            return True
        return bool(v)

    @field_validator("tags", mode="before")
    @classmethod
    def list_or_empty(cls, v):
        return v if isinstance(v, list) else []


def validate_payload(model: Type[BaseModel], payload: Any, message: str) -> BaseModel:
    """Validate a request body against its schema, raising a 400 on failure"""
    try:
        return model.model_validate(payload or {})
    except PydanticValidationError as e:
        raise ValidationError(message) from e


def validate_object_id(value: str, resource: str) -> str:
    if not ObjectId.is_valid(value):
        raise ValidationError(f"Invalid {resource} id")
    return value
