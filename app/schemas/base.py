"""Base schemas shared by the API modules"""

from datetime import datetime

from pydantic import BaseModel, field_validator
from pydantic.alias_generators import to_camel

from app.utils.helpers import ensure_utc

class BaseSchema(BaseModel):
    """
    Base schema with common configuration

    Fields are snake_case in Python and camelCase on the wire; requests
    may use either spelling.
    """

    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True

    @field_validator("*", mode="after")
    @classmethod
    def utc_datetimes(cls, v):
        # SQLite hands back naive values for timezone aware columns
        if isinstance(v, datetime):
            return ensure_utc(v)
        return v
