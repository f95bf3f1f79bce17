"""Tests for preset validation: structural and cross-field checks, collected in one report."""

import pytest

from graphcanvas.errors import ValidationError
from graphcanvas.models.preset import Preset
from graphcanvas.presets.library import list_builtin, load_builtin
from graphcanvas.presets.validator import is_valid, validate


def _codes(result) -> set[str]:
    assert isinstance(result, list), f"expected errors, got {result!r}"
    return {e.code for e in result}


def _paths(result) -> set[str]:
    return {e.path for e in result}


# ---------------------------------------------------------------------------
# Accepting valid presets
# ---------------------------------------------------------------------------


class TestValidPresets:
    def test_minimal_preset_is_accepted(self, mini_dict):
        result = validate(mini_dict)
        assert isinstance(result, Preset)
        assert result.id == "mini"
        assert [nt.id for nt in result.node_types] == ["service", "team"]

    def test_defaults_are_filled(self, mini_dict):
        preset = validate(mini_dict)
        assert preset.behavior.history_limit == 10
        assert preset.behavior.enable_inference is False
        assert preset.styling.theme == "light"
        assert preset.relationships[0].directionality == "directed"

    def test_snake_case_keys_are_accepted(self, mini_dict):
        mini_dict["node_types"] = mini_dict.pop("nodeTypes")
        assert is_valid(mini_dict)

    def test_preset_instance_revalidates(self, mini):
        assert isinstance(validate(mini), Preset)

    @pytest.mark.parametrize("preset_id", ["threat-model", "topo"])
    def test_builtin_presets_are_valid(self, preset_id):
        preset = load_builtin(preset_id)
        assert isinstance(validate(preset), Preset)

    def test_builtin_listing(self):
        assert list_builtin() == ["threat-model", "topo"]

    def test_unknown_builtin_raises_key_error(self):
        with pytest.raises(KeyError):
            load_builtin("does-not-exist")


# ---------------------------------------------------------------------------
# Structural errors
# ---------------------------------------------------------------------------


class TestStructuralErrors:
    def test_non_object_candidate(self):
        result = validate(["not", "a", "preset"])
        assert result == [ValidationError(path="root", message="Preset must be a JSON object", code="invalid-type")]

    def test_bad_id_pattern(self, mini_dict):
        mini_dict["id"] = "Not Valid"
        result = validate(mini_dict)
        assert "id" in _paths(result)

    def test_bad_color(self, mini_dict):
        mini_dict["nodeTypes"][0]["style"]["color"] = "blue"
        result = validate(mini_dict)
        assert "nodeTypes.0.style.color" in _paths(result)

    def test_history_limit_bounds(self, mini_dict):
        mini_dict["behavior"]["historyLimit"] = 5000
        result = validate(mini_dict)
        assert "behavior.historyLimit" in _paths(result)

    def test_unknown_property_type(self, mini_dict):
        mini_dict["nodeTypes"][1]["properties"][0]["type"] = "blob"
        result = validate(mini_dict)
        assert "nodeTypes.1.properties.0.type" in _paths(result)

    def test_empty_node_types(self, mini_dict):
        mini_dict["nodeTypes"] = []
        result = validate(mini_dict)
        assert "nodeTypes" in _paths(result)

    def test_old_version_must_be_migrated(self, mini_dict):
        mini_dict["version"] = "1.1.0"
        result = validate(mini_dict)
        assert _codes(result) == {"unsupported-version"}


# ---------------------------------------------------------------------------
# Cross-field errors
# ---------------------------------------------------------------------------


class TestCrossFieldErrors:
    def test_relationship_references_undeclared_node_type(self, mini_dict):
        mini_dict["relationships"][0]["targetTypes"] = ["service", "database"]
        result = validate(mini_dict)
        assert "unknown-node-type" in _codes(result)
        assert "relationships.0.targetTypes.1" in _paths(result)

    def test_wildcard_is_allowed(self, mini_dict):
        mini_dict["relationships"][0]["sourceTypes"] = ["*"]
        assert is_valid(mini_dict)

    def test_duplicate_node_type_ids(self, mini_dict):
        mini_dict["nodeTypes"][1]["id"] = "service"
        result = validate(mini_dict)
        assert "duplicate-id" in _codes(result)
        assert "nodeTypes.1.id" in _paths(result)

    def test_duplicate_property_ids(self, mini_dict):
        mini_dict["nodeTypes"][0]["properties"][1]["id"] = "name"
        result = validate(mini_dict)
        assert "nodeTypes.0.properties.1.id" in _paths(result)

    def test_enum_without_options(self, mini_dict):
        del mini_dict["nodeTypes"][0]["properties"][2]["options"]
        result = validate(mini_dict)
        assert _codes(result) == {"missing-options"}

    def test_rule_on_undeclared_property(self, mini_dict):
        mini_dict["nodeTypes"][0]["validationRules"].append({"property": "owner", "rule": "min-length", "value": 2})
        result = validate(mini_dict)
        assert _codes(result) == {"unknown-property"}

    def test_invalid_regex(self, mini_dict):
        mini_dict["nodeTypes"][0]["validationRules"].append({"property": "name", "rule": "pattern", "value": "(["})
        result = validate(mini_dict)
        assert _codes(result) == {"invalid-pattern"}

    def test_numeric_rule_needs_number(self, mini_dict):
        mini_dict["nodeTypes"][0]["validationRules"][0]["value"] = "one"
        result = validate(mini_dict)
        assert _codes(result) == {"invalid-rule-value"}

    def test_allow_list_references_undeclared_relationship(self, mini_dict):
        mini_dict["nodeTypes"][1]["outgoingRelationships"] = ["owns", "operates"]
        result = validate(mini_dict)
        assert _codes(result) == {"unknown-relationship"}
        assert "nodeTypes.1.outgoingRelationships.1" in _paths(result)

    def test_all_errors_are_collected(self, mini_dict):
        mini_dict["nodeTypes"][0]["style"]["color"] = "red"
        mini_dict["nodeTypes"][1]["id"] = "service"
        mini_dict["relationships"][0]["sourceTypes"] = ["robot"]
        del mini_dict["nodeTypes"][0]["properties"][2]["options"]
        result = validate(mini_dict)
        codes = _codes(result)
        assert {"duplicate-id", "unknown-node-type", "missing-options"} <= codes
        assert "nodeTypes.0.style.color" in _paths(result)


# ---------------------------------------------------------------------------
# Ontology mappings
# ---------------------------------------------------------------------------


def _with_mapping(preset: dict, **mapping) -> dict:
    preset["ontologyMappings"] = [{"id": "m1", **mapping}]
    return preset


class TestMappingErrors:
    def test_valid_mapping(self, mini_dict):
        _with_mapping(mini_dict, sourceType="team", rule={
            "kind": "neighbors",
            "via": [{"relationship": "owns", "direction": "out"}],
            "attributes": {"owner": True},
        })
        assert is_valid(mini_dict)

    def test_source_and_class_are_exclusive(self, mini_dict):
        mini_dict["nodeTypes"][1]["ontologyClass"] = "d3f:Organization"
        _with_mapping(mini_dict, sourceType="team", ontologyClass="d3f:Organization", rule={
            "kind": "by-type", "attributes": {"x": 1},
        })
        assert _codes(validate(mini_dict)) == {"ambiguous-mapping-source"}

    def test_neither_source_nor_class(self, mini_dict):
        _with_mapping(mini_dict, rule={"kind": "by-type", "attributes": {"x": 1}})
        assert _codes(validate(mini_dict)) == {"ambiguous-mapping-source"}

    def test_unknown_ontology_class(self, mini_dict):
        _with_mapping(mini_dict, ontologyClass="d3f:Nowhere", rule={"kind": "by-type", "attributes": {"x": 1}})
        assert _codes(validate(mini_dict)) == {"unknown-ontology-class"}

    def test_rule_must_derive_something(self, mini_dict):
        _with_mapping(mini_dict, sourceType="team", rule={
            "kind": "neighbors", "via": [{"relationship": "owns"}],
        })
        assert _codes(validate(mini_dict)) == {"empty-rule"}

    def test_path_rule_needs_via(self, mini_dict):
        _with_mapping(mini_dict, sourceType="team", rule={"kind": "path", "derivedRelationship": "owns"})
        assert _codes(validate(mini_dict)) == {"missing-via"}

    def test_property_match_needs_property(self, mini_dict):
        _with_mapping(mini_dict, sourceType="team", rule={"kind": "property-match", "derivedRelationship": "owns"})
        assert _codes(validate(mini_dict)) == {"missing-match-property"}

    def test_unknown_relationships_in_rule(self, mini_dict):
        _with_mapping(mini_dict, sourceType="team", rule={
            "kind": "path",
            "derivedRelationship": "manages",
            "via": [{"relationship": "reports-to"}],
        })
        result = validate(mini_dict)
        assert _codes(result) == {"unknown-relationship"}
        assert _paths(result) == {"ontologyMappings.0.rule.derivedRelationship", "ontologyMappings.0.rule.via.0.relationship"}

    def test_duplicate_mapping_ids(self, mini_dict):
        rule = {"kind": "by-type", "attributes": {"x": 1}}
        mini_dict["ontologyMappings"] = [
            {"id": "m1", "sourceType": "team", "rule": rule},
            {"id": "m1", "sourceType": "service", "rule": rule},
        ]
        result = validate(mini_dict)
        assert _codes(result) == {"duplicate-id"}
        assert "ontologyMappings.1.id" in _paths(result)
