from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class LedgerModel(BaseModel):
    """Immutable base for stored entities.

    Python attributes are snake_case; the stored/wire form uses camelCase keys.
    """
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_record(self) -> dict:
        """Serialize to the JSON-compatible dict written to the store."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
