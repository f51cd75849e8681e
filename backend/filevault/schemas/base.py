"""Base schema class with camelCase alias generation.

Backend Python code stays snake_case. API JSON in and out is camelCase,
matching the field names the web client already sends (originalName,
newName, file1Id, ...).
"""
from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts camelCase or snake_case, serializes camelCase when by_alias is used."""
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "from_attributes": True,
    }
