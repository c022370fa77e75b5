"""
Base Schemas
============

Common schema configuration shared by every record model.
"""

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """
    Base Pydantic schema with common configuration.
    
    Records coming from external indexers may carry extra, indexer-specific
    fields; they are kept on the model rather than rejected.
    """
    
    model_config = ConfigDict(
        # Allow building from SQLAlchemy rows
        from_attributes=True,
        # Validate default values
        validate_default=True,
        # Use enum values instead of names
        use_enum_values=True,
        # Strip whitespace from strings
        str_strip_whitespace=True,
        extra="allow",
    )


class StrictSchema(BaseSchema):
    """Schema for engine-produced values; unknown fields are dropped."""

    model_config = ConfigDict(extra="ignore")
