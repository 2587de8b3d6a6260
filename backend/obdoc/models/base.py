"""
Shared model base - camelCase on the wire, snake_case in Python.
"""

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that accepts and emits camelCase field names."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
