# marketplace/schemas/base.py
from pydantic import BaseModel, ConfigDict


def to_camel(s: str) -> str:
    """``product_age_months`` -> ``productAgeMonths``."""
    head, *rest = s.split("_")
    return head + "".join(p.capitalize() for p in rest)


class BaseSchema(BaseModel):
    """Listing, profile and interest payloads.

    Fields are snake_case in Python and camelCase on the wire; requests may
    use either spelling. Responses are built straight from ORM rows.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        str_strip_whitespace=True,
    )
