"""Field descriptors — The schema a data provider declares for its index."""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum

from pydantic import BaseModel, Field


class FieldType(str, Enum):
    """Semantic type of an indexed field."""

    UNKNOWN = "unknown"
    STRING = "string"
    INT32 = "int32"
    INT64 = "int64"
    FLOAT = "float"
    BOOL = "bool"
    OBJECT = "object"


FieldSignature = tuple[str, FieldType, bool, bool, bool, bool, bool]


class FieldDescriptor(BaseModel):
    """Description of a single field in a search index."""

    model_config = {"frozen": True}

    name: str = Field(min_length=1, description="Field name, unique within a provider")
    type: FieldType = Field(default=FieldType.STRING, description="Semantic field type")
    is_array: bool = Field(default=False, description="Whether the field holds a list of values")
    is_searchable: bool = Field(default=False, description="Included in full-text search")
    is_facet: bool = Field(default=False, description="Available for faceting")
    is_filterable: bool = Field(default=False, description="Available in filter expressions")
    is_sortable: bool = Field(default=False, description="Available for sorting")
    is_retrievable: bool = Field(default=True, description="Returned in search results")
    no_typo_tolerance: bool = Field(default=False, description="Disable typo tolerance for this field")
    locale: str | None = Field(default=None, description="Locale tag for language-aware tokenization")

    def signature(self) -> FieldSignature:
        """Return the tuple used to decide whether two schemas are compatible.

        Retrievability, typo tolerance and locale are not part of it.
        """
        return (
            self.name,
            self.type,
            self.is_array,
            self.is_facet,
            self.is_filterable,
            self.is_sortable,
            self.is_searchable,
        )


def validate_field_set(fields: Iterable[FieldDescriptor]) -> list[FieldDescriptor]:
    """Materialize *fields* and check that every name is unique.

    Raises:
        ValueError: If two descriptors share a name.
    """
    result: list[FieldDescriptor] = []
    seen: set[str] = set()
    for field in fields:
        if field.name in seen:
            raise ValueError(f"Duplicate field name '{field.name}'")
        seen.add(field.name)
        result.append(field)
    return result


def locales(fields: Iterable[FieldDescriptor]) -> list[str]:
    """Distinct non-blank locales declared by *fields*, in declaration order."""
    found: list[str] = []
    for field in fields:
        if field.locale and field.locale.strip() and field.locale not in found:
            found.append(field.locale)
    return found
