"""
Projection engine tests - selection shapes, projected types and extraction.
"""

from typing import List, Optional
from unittest.mock import patch

import pytest
from pydantic import BaseModel

from typedstore.core.errors import DeclarationError, ShapeError, ValidationError
from typedstore.core.projection import (
    Include,
    Nested,
    compile_selection,
    compute_select_from,
    extract_shape,
    project,
)
from typedstore.core.schema import nested_model


class Meta(BaseModel):
    created_at: str
    updated_at: str


class User(BaseModel):
    name: Optional[str] = None
    id: str
    email: str
    meta: Optional[Meta] = None


class Account(BaseModel):
    id: int
    owner: str
    tags: List[str] = []
    meta: Meta


@pytest.fixture
def full_user():
    return {
        "email": "blah@gmail.com",
        "name": "blah",
        "id": "1-1-1-1",
        "meta": {"created_at": "1", "updated_at": "2"}
    }


class TestCompileSelection:
    """Shapes are checked against the schema when they are compiled."""

    def test_bools_become_include_nodes(self):
        selection = compile_selection(User, {"email": True, "name": False})
        assert selection.fields["email"] == Include(True)
        assert selection.fields["name"] == Include(False)
        assert selection.selected() == ["email"]

    def test_nested_mapping_becomes_nested_node(self):
        selection = compile_selection(User, {"meta": {"created_at": True}})
        assert isinstance(selection.fields["meta"], Nested)
        assert selection.fields["meta"].fields["created_at"] == Include(True)

    def test_unknown_field_is_rejected(self):
        with pytest.raises(ShapeError) as exc_info:
            compile_selection(User, {"nickname": True})
        assert "nickname" in str(exc_info.value)

    def test_unknown_nested_field_reports_full_path(self):
        with pytest.raises(ShapeError) as exc_info:
            compile_selection(User, {"meta": {"deleted_at": True}})
        assert "meta.deleted_at" in str(exc_info.value)

    def test_nested_shape_on_scalar_field_is_rejected(self):
        with pytest.raises(ShapeError):
            compile_selection(User, {"email": {"domain": True}})

    @pytest.mark.parametrize("value", ["yes", 1, None, ["email"]])
    def test_non_bool_leaf_is_rejected(self, value):
        with pytest.raises(ShapeError):
            compile_selection(User, {"email": value})

    def test_shape_errors_are_declaration_errors(self):
        with pytest.raises(DeclarationError):
            compile_selection(User, {"nickname": True})
        with pytest.raises(ValueError):
            compile_selection(User, {"nickname": True})

    def test_schema_must_be_a_model(self):
        with pytest.raises(DeclarationError):
            compile_selection(dict, {"email": True})

    def test_compiled_selection_can_be_recompiled(self):
        selection = compile_selection(User, {"email": True, "meta": {"created_at": True}})
        assert compile_selection(User, selection) == selection


class TestComputeSelectFrom:
    """The projected type holds exactly the selected fields."""

    def test_flat_selection(self):
        model = compute_select_from(User, {"email": True})
        assert list(model.model_fields) == ["email"]
        assert model.model_fields["email"].annotation is str
        assert model.__name__ == "UserSelection"

    def test_false_flags_are_excluded(self):
        model = compute_select_from(User, {"email": True, "name": False})
        assert list(model.model_fields) == ["email"]

    def test_nested_selection_builds_nested_model(self):
        model = compute_select_from(User, {"email": True, "meta": {"created_at": True}})
        assert set(model.model_fields) == {"email", "meta"}

        meta_model = nested_model(model.model_fields["meta"].annotation)
        assert meta_model is not None
        assert list(meta_model.model_fields) == ["created_at"]

    def test_optionality_and_defaults_carry_over(self):
        model = compute_select_from(User, {"name": True, "email": True, "meta": {"created_at": True}})
        assert model.model_fields["email"].is_required()
        assert not model.model_fields["name"].is_required()
        assert not model.model_fields["meta"].is_required()

        instance = model(email="a@b.com")
        assert instance.name is None
        assert instance.meta is None

    def test_required_nested_stays_required(self):
        model = compute_select_from(Account, {"meta": {"updated_at": True}})
        assert model.model_fields["meta"].is_required()

    def test_projected_model_validates_projection(self, full_user):
        shape = {"email": True, "meta": {"created_at": True}}
        model = compute_select_from(User, shape)
        projected = extract_shape(User, shape, full_user)
        assert model.model_validate(projected).model_dump() == projected


class TestExtractShape:
    """Validation happens first, then only selected keys survive."""

    def test_selects_flat_and_nested_fields(self, full_user):
        result = extract_shape(User, {"email": True, "name": True, "meta": {"created_at": True}}, full_user)
        assert result == {
            "email": "blah@gmail.com",
            "name": "blah",
            "meta": {"created_at": "1"}
        }

    def test_unselected_keys_are_omitted(self, full_user):
        result = extract_shape(User, {"email": True}, full_user)
        assert result == {"email": "blah@gmail.com"}

    def test_missing_optional_field_is_absent_not_an_error(self):
        result = extract_shape(User, {"name": True, "email": True}, {"id": "1", "email": "a@b.com"})
        assert result == {"email": "a@b.com"}

    def test_missing_optional_nested_object_is_absent(self):
        result = extract_shape(User, {"meta": {"created_at": True}}, {"id": "1", "email": "a@b.com"})
        assert result == {}

    def test_true_on_object_field_keeps_whole_object(self, full_user):
        result = extract_shape(User, {"meta": True}, full_user)
        assert result == {"meta": {"created_at": "1", "updated_at": "2"}}

    def test_list_values_are_copied(self):
        raw = {"id": 7, "owner": "ann", "tags": ["a", "b"], "meta": {"created_at": "1", "updated_at": "2"}}
        result = extract_shape(Account, {"id": True, "tags": True}, raw)
        assert result == {"id": 7, "tags": ["a", "b"]}

    def test_validation_normalizes_before_projection(self):
        raw = {"id": "7", "owner": "ann", "meta": {"created_at": "1", "updated_at": "2"}}
        result = extract_shape(Account, {"id": True, "tags": True}, raw)
        assert result == {"id": 7, "tags": []}

    def test_accepts_model_instances(self, full_user):
        result = extract_shape(User, {"id": True}, User(**full_user))
        assert result == {"id": "1-1-1-1"}

    def test_missing_required_field_fails(self):
        with pytest.raises(ValidationError) as exc_info:
            extract_shape(User, {"email": True}, {"email": "a@b.com"})
        assert exc_info.value.fields == {"id"}

    def test_invalid_nested_field_is_reported_by_path(self):
        raw = {"id": 1, "owner": "ann", "meta": {"created_at": "1"}}
        with pytest.raises(ValidationError) as exc_info:
            extract_shape(Account, {"owner": True}, raw)
        assert exc_info.value.fields == {"meta.updated_at"}

    def test_invalid_value_skips_extraction(self):
        with patch("typedstore.core.projection.project") as mock_project:
            with pytest.raises(ValidationError):
                extract_shape(User, {"email": True}, {"id": "1", "email": 42})
        mock_project.assert_not_called()

    def test_non_mapping_input_fails_validation(self):
        with pytest.raises(ValidationError):
            extract_shape(User, {"email": True}, "not a record")


class TestProjectionProperties:
    """Completeness, soundness and idempotence of projection."""

    @pytest.mark.parametrize("shape,expected_keys", [
        ({"email": True}, {"email"}),
        ({"email": True, "id": True}, {"email", "id"}),
        ({"email": False, "id": True}, {"id"}),
        ({"meta": {"updated_at": True}}, {"meta"}),
        ({}, set()),
    ])
    def test_exactly_selected_keys(self, full_user, shape, expected_keys):
        result = extract_shape(User, shape, full_user)
        assert set(result) == expected_keys

    def test_projection_is_idempotent(self, full_user):
        selection = compile_selection(User, {"email": True, "meta": {"created_at": True}, "name": False})
        once = extract_shape(User, selection, full_user)
        assert project(once, selection) == once

    def test_extracting_through_projected_type_is_stable(self, full_user):
        shape = {"email": True, "meta": {"created_at": True}}
        once = extract_shape(User, shape, full_user)
        twice = extract_shape(compute_select_from(User, shape), shape, once)
        assert twice == once

    def test_projection_does_not_alias_source(self):
        source = {"id": 1, "tags": ["a"]}
        result = project(source, compile_selection(Account, {"tags": True}))
        result["tags"].append("b")
        assert source["tags"] == ["a"]
