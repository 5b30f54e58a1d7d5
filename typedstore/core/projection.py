"""
Projection engine: selection shapes over record schemas.

A selection shape is a nested mapping from field name to either a bool
(include the field or not) or another shape (select inside an object field):

    {"email": True, "meta": {"created_at": True}}

Shapes are compiled against the schema into Include/Nested nodes, which is
where incompatible shapes are rejected. compute_select_from derives the
projected record type; extract_shape validates a raw value and projects it.
"""

import copy
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Type, Union

from pydantic import BaseModel, Field, create_model

from .errors import ShapeError, ValidationError
from .schema import is_optional, nested_model, require_model, safe_validate


@dataclass(frozen=True)
class Include:
    """Leaf selection: keep the field as-is when flag is true."""

    flag: bool


@dataclass(frozen=True)
class Nested:
    """Selection inside an object-valued field."""

    fields: Mapping[str, "SelectionNode"]

    def selected(self):
        """Names of the fields this selection keeps."""
        return [name for name, node in self.fields.items() if is_selected(node)]


SelectionNode = Union[Include, Nested]


def is_selected(node: SelectionNode) -> bool:
    return isinstance(node, Nested) or node.flag


def compile_selection(schema: Type[BaseModel], shape: Union[Mapping[str, Any], Nested],
                      _path: str = "") -> Nested:
    """Check shape against schema and build its tagged form."""
    require_model(schema)

    if isinstance(shape, Nested):
        shape = shape.fields
    if not isinstance(shape, Mapping):
        raise ShapeError(f"Selection for '{_path or schema.__name__}' must be a mapping, got {type(shape).__name__}")

    nodes: Dict[str, SelectionNode] = {}
    for key, value in shape.items():
        path = f"{_path}.{key}" if _path else str(key)
        info = schema.model_fields.get(key)
        if info is None:
            raise ShapeError(f"'{path}' is not a field of {schema.__name__}")

        if isinstance(value, Include):
            nodes[key] = value
        elif isinstance(value, bool):
            nodes[key] = Include(value)
        elif isinstance(value, (Mapping, Nested)):
            sub_schema = nested_model(info.annotation)
            if sub_schema is None:
                raise ShapeError(f"'{path}' is not an object field and cannot take a nested selection")
            nodes[key] = compile_selection(sub_schema, value, path)
        else:
            raise ShapeError(f"Selection for '{path}' must be a bool or a nested mapping, got {type(value).__name__}")

    return Nested(MappingProxyType(nodes))


def _field_default(info) -> Any:
    if info.is_required():
        return ...
    if info.default_factory is not None:
        return Field(default_factory=info.default_factory)
    return info.default


def _build_selection_model(schema: Type[BaseModel], selection: Nested) -> Type[BaseModel]:
    definitions = {}
    for name, node in selection.fields.items():
        if not is_selected(node):
            continue

        info = schema.model_fields[name]
        annotation = info.annotation
        if isinstance(node, Nested):
            sub_model = _build_selection_model(nested_model(annotation), node)
            annotation = Optional[sub_model] if is_optional(annotation) else sub_model

        definitions[name] = (annotation, _field_default(info))

    return create_model(f"{schema.__name__}Selection", **definitions)


def compute_select_from(schema: Type[BaseModel], shape: Union[Mapping[str, Any], Nested]) -> Type[BaseModel]:
    """
    Derive the projected record type for shape.

    The result is a pydantic model holding exactly the selected fields, with
    nested selections turned into nested projected models. Optionality and
    defaults of the source fields carry over.
    """
    return _build_selection_model(schema, compile_selection(schema, shape))


def project(value: Mapping[str, Any], selection: Nested) -> Dict[str, Any]:
    """Keep the selected keys of an already validated value, recursively."""
    result = {}
    for key, item in value.items():
        node = selection.fields.get(key)
        if node is None or item is None:
            continue

        if isinstance(node, Nested):
            if isinstance(item, Mapping):
                result[key] = project(item, node)
        elif node.flag:
            result[key] = copy.deepcopy(item) if isinstance(item, (dict, list)) else item

    return result


def extract_shape(schema: Type[BaseModel], shape: Union[Mapping[str, Any], Nested], raw: Any) -> Dict[str, Any]:
    """Validate raw against schema, then project it through shape."""
    selection = compile_selection(schema, shape)

    result = safe_validate(schema, raw)
    if not result.success:
        raise ValidationError(
            f"Value does not match {schema.__name__}; invalid fields: {', '.join(result.fields)}",
            result.issues
        )

    return project(result.value, selection)
