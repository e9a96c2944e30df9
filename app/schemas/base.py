"""
Base Schema Classes for Pydantic Models

RULE: All response schemas that read from ORM models inherit from BaseResponseSchema.
"""

from pydantic import BaseModel, ConfigDict


class BaseResponseSchema(BaseModel):
    """
    Base class for response schemas that read from ORM models.

    Usage:
        class SplitResponse(BaseResponseSchema):
            id: UUID
            unit_code: str
    """
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """
    Base class for create/input schemas.

    Unknown fields are ignored so older clients keep working.
    """
    model_config = ConfigDict(
        extra='ignore',
    )


class BaseUpdateSchema(BaseModel):
    """
    Base class for update schemas.

    All fields are optional for partial updates.
    """
    model_config = ConfigDict(
        extra='ignore',
    )
