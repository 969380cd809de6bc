from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Request bodies use camelCase field names on the wire"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def not_null(value):
    """Optional in a partial update means "may be omitted", not "may be cleared"."""
    if value is None:
        raise ValueError("may not be null")
    return value
