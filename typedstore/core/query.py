"""
Query handles: one record schema plus one selection shape.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Generic, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel

from ..util.logging import logger
from .config import debug_enabled
from .errors import ValidationError
from .projection import compile_selection, compute_select_from, extract_shape
from .schema import normalize_field_value

T = TypeVar("T", bound=BaseModel)


@dataclass(frozen=True)
class Filter(Generic[T]):
    """
    Filter intent declared through Query.where.

    criteria holds the normalized field values. Evaluating a filter against
    stored records is up to the storage layer; nothing here reads data.
    """

    query: "Query[T]"
    criteria: Mapping[str, Any]

    @property
    def result_model(self) -> Type[BaseModel]:
        return self.query.result_model


class Query(Generic[T]):
    """Selection of a subset of fields from records of one schema."""

    def __init__(self, schema: Type[T], shape: Mapping[str, Any]):
        self.schema = schema
        self.shape = shape
        self.selection = compile_selection(schema, shape)
        self.result_model = compute_select_from(schema, self.selection)

    def extract_shape(self, value: Any) -> Dict[str, Any]:
        """Validate value against the schema and return only the selected fields."""
        try:
            projected = extract_shape(self.schema, self.selection, value)
        except ValidationError as e:
            logger.log_schema_validation_error(
                "query.extract_shape", e.issues, value if isinstance(value, dict) else None
            )
            raise

        if debug_enabled():
            logger.debug(f"Projected {self.schema.__name__} onto {self.result_model.__name__}: {sorted(projected)}")
        return projected

    def where(self, criteria: Optional[Mapping[str, Any]] = None, **fields: Any) -> Filter[T]:
        """
        Declare a filter over the record type.

        Every key must be a field of the schema and every value must fit that
        field's type with optionality stripped, so None never matches.
        """
        merged = dict(criteria or {})
        merged.update(fields)

        normalized = {
            name: normalize_field_value(self.schema, name, value)
            for name, value in merged.items()
        }
        return Filter(self, MappingProxyType(normalized))

    def __repr__(self):
        return f"Query({self.schema.__name__}, {self.selection.selected()})"
