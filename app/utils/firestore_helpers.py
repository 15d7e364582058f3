"""
Firestore query and document helpers.

NOTE: For firebase_admin SDK, we use positional where() arguments which still work.
The deprecation warning is just a warning - the functionality is still supported.
"""

from typing import Iterable, List, Type, TypeVar

from pydantic import BaseModel

# Firestore rejects "in" filters with more than 30 values
IN_FILTER_LIMIT = 30

ModelT = TypeVar("ModelT", bound=BaseModel)


def where_filter(query, field_path: str, op_string: str, value):
    """
    Usage:
        query = where_filter(collection, "category", "==", "Pothole")
        query = where_filter(query, "geohash", "in", ["tdr1y0c", "tdr1y0f"])
    """
    return query.where(field_path, op_string, value)


def chunked(values: Iterable, size: int = IN_FILTER_LIMIT) -> List[List]:
    """Split values into lists small enough for an "in" filter."""
    values = list(values)
    return [values[i:i + size] for i in range(0, len(values), size)]


def to_document(model: BaseModel) -> dict:
    """
    Serialize a model for storage. JSON mode turns sets into lists and
    enums into their values; timestamps become ISO strings which sort
    correctly and parse back into timezone-aware datetimes.
    """
    data = model.model_dump(mode="json")
    data.pop("id", None)
    return data


def from_snapshot(model_cls: Type[ModelT], snapshot) -> ModelT:
    """Build a model from a document snapshot, restoring its ID."""
    data = snapshot.to_dict() or {}
    if "id" in model_cls.model_fields:
        data["id"] = snapshot.id
    return model_cls.model_validate(data)
