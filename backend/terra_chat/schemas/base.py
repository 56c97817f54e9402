"""
Shared schema base: camelCase on the wire, snake_case in Python.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        str_strip_whitespace=True,
    )

    def to_wire(self) -> dict:
        """JSON ready dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)
