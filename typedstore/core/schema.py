"""
Schema validation over pydantic models.

A record schema is a pydantic BaseModel subclass. safe_validate never raises
for bad input; it reports the invalid fields instead.
"""

import types
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Type, Union, get_args, get_origin

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .errors import DeclarationError, FilterError

_UNION_TYPES = (Union, types.UnionType)
_NONE_TYPE = type(None)
VALID_KEY_TYPES = (str, int, float)


@dataclass
class ValidationResult:
    """Outcome of validating one raw value against a record schema."""

    success: bool
    value: Optional[Dict[str, Any]] = None
    issues: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def fields(self) -> List[str]:
        return sorted({issue["field"] for issue in self.issues})


def require_model(schema: Any) -> Type[BaseModel]:
    """Check that schema is a pydantic model class."""
    if not (isinstance(schema, type) and issubclass(schema, BaseModel)):
        raise DeclarationError(f"Record schema must be a pydantic BaseModel subclass, got {schema!r}")
    return schema


def issues_from_error(error: PydanticValidationError) -> List[Dict[str, Any]]:
    """Flatten a pydantic ValidationError into field/message/type entries."""
    issues = []
    for err in error.errors():
        location = ".".join(str(part) for part in err.get("loc", ()))
        issues.append({
            "field": location or "__root__",
            "message": err.get("msg", ""),
            "type": err.get("type", "")
        })
    return issues


def safe_validate(schema: Type[BaseModel], value: Any) -> ValidationResult:
    """Validate value against schema and return the normalized record or the issues."""
    try:
        model = schema.model_validate(value)
    except PydanticValidationError as e:
        return ValidationResult(success=False, issues=issues_from_error(e))

    return ValidationResult(success=True, value=model.model_dump(mode="json"))


def field_annotation(schema: Type[BaseModel], name: str) -> Any:
    """Declared annotation of a field, or None when the field does not exist."""
    info = schema.model_fields.get(name)
    if info is None:
        return None
    return info.annotation


def is_optional(annotation: Any) -> bool:
    return get_origin(annotation) in _UNION_TYPES and _NONE_TYPE in get_args(annotation)


def strip_optional(annotation: Any) -> Any:
    """Remove None from a union annotation (Optional[X] -> X)."""
    if get_origin(annotation) not in _UNION_TYPES:
        return annotation

    args = tuple(arg for arg in get_args(annotation) if arg is not _NONE_TYPE)
    if len(args) == 1:
        return args[0]
    return Union[args]


def nested_model(annotation: Any) -> Optional[Type[BaseModel]]:
    """The model type behind a (possibly optional) field annotation, if any."""
    inner = strip_optional(annotation)
    if isinstance(inner, type) and issubclass(inner, BaseModel):
        return inner
    return None


def is_valid_key_annotation(annotation: Any) -> bool:
    """Primary keys must be plain strings or numbers."""
    return annotation in VALID_KEY_TYPES


def normalize_field_value(schema: Type[BaseModel], name: str, value: Any) -> Any:
    """
    Validate value against the non-optional type of one field and return its
    JSON form, which is how the field is stored.
    """
    annotation = field_annotation(schema, name)
    if annotation is None:
        raise FilterError(f"'{name}' is not a field of {schema.__name__}")

    if value is None:
        raise FilterError(f"'{name}' needs a concrete value, not None")

    adapter = TypeAdapter(strip_optional(annotation))
    try:
        validated = adapter.validate_python(value)
    except PydanticValidationError as e:
        messages = "; ".join(issue["message"] for issue in issues_from_error(e))
        raise FilterError(f"Value for '{name}' does not fit {schema.__name__}.{name}: {messages}") from e

    return adapter.dump_python(validated, mode="json")
