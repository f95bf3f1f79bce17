"""Tests for the STIX 2.1 import pipeline: parsing, per-object validation, mapping, staging, and atomic commit."""

import json

import pytest

from conftest import stix_bundle, stix_object, stix_relationship
from graphcanvas.engine.event_bus import IMPORT_COMPLETED, VALIDATION_FAILED
from graphcanvas.engine.serialization import empty_snapshot
from graphcanvas.errors import ImportCancelled, ParseError
from graphcanvas.importers.stix_mapping import ImportOptions, grid_position, map_to_graph, node_label
from graphcanvas.importers.stix_parser import parse
from graphcanvas.importers.stix_pipeline import ImportPipeline
from graphcanvas.importers.stix_validators import SUPPORTED_TYPES, VALIDATORS, iter_validated, validate_objects

ACTORS = [f"threat-actor--a{i}000000-0000-4000-8000-000000000000" for i in range(3)]
TOOLS = [f"tool--b{i}000000-0000-4000-8000-000000000000" for i in range(3)]


def _actors_and_tools() -> list[dict]:
    objects = [stix_object("threat-actor", ref.split("--")[1], name=f"Actor {i}") for i, ref in enumerate(ACTORS)]
    objects += [stix_object("tool", ref.split("--")[1], name=f"Tool {i}") for i, ref in enumerate(TOOLS)]
    return objects


def _uses_relationships() -> list[dict]:
    return [
        stix_relationship(f"c{a}{t}000000-0000-4000-8000-000000000000", "uses", actor, tool)
        for a, actor in enumerate(ACTORS)
        for t, tool in enumerate(TOOLS)
    ]


def _ten_objects_one_malformed() -> dict:
    objects = _actors_and_tools()
    objects += [
        stix_object("attack-pattern", f"d{i}000000-0000-4000-8000-000000000000", name=f"Technique {i}")
        for i in range(3)
    ]
    # Malware must declare is_family.
    objects.insert(4, stix_object("malware", "e0000000-0000-4000-8000-000000000000", name="Broken"))
    return stix_bundle(*objects)


@pytest.fixture
def pipeline(threat_model):
    return ImportPipeline(threat_model)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class TestParse:
    def test_parses_bytes(self, lantern_bundle):
        bundle = parse(json.dumps(lantern_bundle).encode())
        assert len(bundle.objects) == 20

    def test_parses_dict(self, lantern_bundle):
        assert parse(lantern_bundle).id == lantern_bundle["id"]

    @pytest.mark.parametrize("data", [
        b"{not json",
        "[1, 2, 3]",
        {"type": "report", "objects": []},
        {"type": "bundle"},
        {"type": "bundle", "objects": {"a": 1}},
    ])
    def test_rejects_malformed_input(self, data):
        with pytest.raises(ParseError):
            parse(data)


# ---------------------------------------------------------------------------
# Per-object validation
# ---------------------------------------------------------------------------


class TestValidation:
    def test_dispatch_table_is_read_only(self):
        with pytest.raises(TypeError):
            VALIDATORS["custom"] = lambda obj: obj

    def test_supported_types(self):
        assert SUPPORTED_TYPES == {
            "attack-pattern", "campaign", "course-of-action", "grouping", "identity", "indicator",
            "infrastructure", "intrusion-set", "location", "malware", "threat-actor", "tool",
            "vulnerability", "relationship", "sighting",
        }

    def test_one_issue_per_bad_object(self):
        report = validate_objects(parse(_ten_objects_one_malformed()))
        assert len(report.valid) == 9
        assert len(report.errors) == 1
        issue = report.errors[0]
        assert issue.index == 4
        assert issue.code == "invalid-object"
        assert issue.object_type == "malware"
        assert "is_family" in issue.message

    def test_unknown_type_is_warning(self, lantern_bundle):
        report = validate_objects(parse(lantern_bundle))
        assert report.errors == []
        assert len(report.warnings) == 1
        warning = report.warnings[0]
        assert warning.index == 19
        assert warning.object_type == "x-acme-analyst-note"

    def test_common_checks(self):
        bundle = parse(stix_bundle(
            "not an object",
            {"id": "tool--f0000000-0000-4000-8000-000000000000", "name": "No type"},
            stix_object("tool", "f1000000-0000-4000-8000-000000000000", name="Hammer"),
            stix_object("tool", "f1000000-0000-4000-8000-000000000000", name="Hammer again"),
            {**stix_object("malware", "f2000000-0000-4000-8000-000000000000", name="Mislabelled", is_family=True),
             "id": "tool--f2000000-0000-4000-8000-000000000000"},
            stix_object("grouping", "f3000000-0000-4000-8000-000000000000", context="suspicious-activity", object_refs=["nope"]),
            {k: v for k, v in stix_object("malware", "f5000000-0000-4000-8000-000000000000", name="Undated", is_family=True).items()
             if k not in ("created", "modified")},
            stix_object("tool", "f6000000-0000-4000-8000-000000000000", name="Garbled", modified="yesterday"),
            stix_object("tool", "f7000000-0000-4000-8000-000000000000", name="Backdated", modified="2023-12-31T00:00:00Z"),
        ))
        report = validate_objects(bundle)
        assert [(e.index, e.code) for e in report.errors] == [
            (0, "invalid-object"),
            (1, "missing-type"),
            (3, "duplicate-id"),
            (4, "id-type-mismatch"),
            (5, "invalid-object"),
            (6, "invalid-object"),
            (7, "invalid-object"),
            (8, "invalid-object"),
        ]
        assert "created" in report.errors[5].message
        assert "modified" in report.errors[6].message
        assert [v.index for v in report.valid] == [2]

    def test_stream_is_lazy_and_restartable(self, lantern_bundle):
        stream = iter_validated(parse(lantern_bundle))
        first = next(iter(stream))
        assert first.object_type == "identity"
        assert [o.index for o in stream] == [o.index for o in stream] == list(range(20))


# ---------------------------------------------------------------------------
# Mapping
# ---------------------------------------------------------------------------


class TestMapping:
    def test_node_label(self):
        assert node_label({"type": "indicator", "id": "indicator--8e2e2d2b-17d4"}) == "indicator (8e2e2d2b)"
        assert node_label({"type": "tool", "id": "tool--x", "name": "nmap"}) == "nmap"

    def test_default_options(self):
        options = ImportOptions()
        assert options.type_mapping["course-of-action"] == "mitigation"
        assert options.relationship_mapping["originates-from"] == "located-at"
        assert options.accepts("malware")
        with pytest.raises(TypeError):
            options.type_mapping["note"] = "indicator"

    def test_grid_position(self):
        options = ImportOptions(grid_columns=4, grid_spacing=100)
        assert grid_position(5, options).model_dump() == {"x": 100.0, "y": 100.0}

    def test_unmapped_types_become_errors(self, topo, lantern_bundle):
        report = validate_objects(parse(lantern_bundle))
        candidate = map_to_graph(report.valid, topo, ImportOptions(), empty_snapshot(topo))
        assert candidate.items == []
        codes = {e.code for e in candidate.errors}
        assert "unmapped-type" in codes

    def test_custom_type_mapping(self, topo):
        bundle = parse(stix_bundle(
            stix_object("identity", "f4000000-0000-4000-8000-000000000000", name="Billing API"),
        ))
        options = ImportOptions(type_mapping={"identity": "server"})
        candidate = map_to_graph(validate_objects(bundle).valid, topo, options, empty_snapshot(topo))
        node = candidate.items[0].mutation.node
        assert node.type_id == "server"
        assert node.properties["name"] == "Billing API"


# ---------------------------------------------------------------------------
# Full runs
# ---------------------------------------------------------------------------


class TestRun:
    def test_sample_bundle(self, pipeline, threat_store, lantern_bundle):
        summary = pipeline.run(json.dumps(lantern_bundle), threat_store)
        assert summary.objects_read == 20
        assert summary.nodes_created == 11
        assert summary.edges_created == 8
        assert summary.skipped == 1
        assert summary.errors == []
        assert [w.code for w in summary.warnings] == ["unknown-type"]
        assert summary.by_type["relationship"] == 7
        assert summary.by_type["malware"] == 2
        assert summary.by_type["x-acme-analyst-note"] == 1
        assert len(threat_store.get_history()) == 1

    def test_sample_bundle_node_shape(self, pipeline, threat_store, lantern_bundle):
        pipeline.run(lantern_bundle, threat_store)
        nodes = threat_store.snapshot.nodes
        identity = nodes["identity--733c5838-34d9-4fbf-949c-62aba761184c"]
        assert identity.type_id == "asset"
        assert identity.properties["name"] == "ACME Corp"
        assert identity.properties["stixType"] == "identity"
        assert identity.properties["stix"]["sectors"] == ["manufacturing"]
        assert "name" not in identity.properties["stix"]
        assert nodes["intrusion-set--4e78f46f-a023-4e5f-bc24-71b3ca22ec29"].type_id == "threat-actor"
        assert nodes["course-of-action--70b3d5f6-374b-4488-8688-729b6eedac5b"].type_id == "mitigation"
        assert nodes["indicator--8e2e2d2b-17d4-4cbf-938f-98ee46b3cd3f"].properties["name"] == "indicator (8e2e2d2b)"

    def test_positions_follow_insertion_grid(self, pipeline, threat_store, lantern_bundle):
        pipeline.run(lantern_bundle, threat_store)
        positions = [(n.position.x, n.position.y) for n in threat_store.snapshot.nodes.values()]
        assert positions[0] == (0.0, 0.0)
        assert positions[1] == (180.0, 0.0)
        assert positions[8] == (0.0, 180.0)

    def test_sighting_edge(self, pipeline, threat_store, lantern_bundle):
        pipeline.run(lantern_bundle, threat_store)
        edge = threat_store.snapshot.edges["sighting--ee20065d-2555-424f-ad9e-0f8428623c75"]
        assert edge.type_id == "sighted-at"
        assert edge.source == "indicator--8e2e2d2b-17d4-4cbf-938f-98ee46b3cd3f"
        assert edge.target == "identity--733c5838-34d9-4fbf-949c-62aba761184c"
        assert edge.properties["count"] == 3
        assert edge.properties["stix"]["first_seen"] == "2024-03-04T07:12:00Z"

    def test_relationship_edges_keep_stix_fields(self, pipeline, threat_store, lantern_bundle):
        pipeline.run(lantern_bundle, threat_store)
        edge = threat_store.snapshot.edges["relationship--9a2ff6a6-3b14-4c1b-9b24-7ed5dc19a1b4"]
        assert edge.type_id == "attributed-to"
        assert edge.properties["stixType"] == "attributed-to"
        assert edge.properties["stix"]["confidence"] == 70

    def test_n_relationships_give_n_edges_and_one_entry(self, pipeline, threat_store):
        relationships = _uses_relationships()
        summary = pipeline.run(stix_bundle(*_actors_and_tools(), *relationships), threat_store)
        assert summary.errors == []
        assert summary.edges_created == len(relationships) == 9
        assert len(threat_store.snapshot.edges) == 9
        assert len(threat_store.get_history()) == 1

    def test_malformed_object_among_ten(self, pipeline, threat_store):
        summary = pipeline.run(_ten_objects_one_malformed(), threat_store)
        assert summary.nodes_created == 9
        assert len(threat_store.snapshot.nodes) == 9
        assert [(e.index, e.code) for e in summary.errors] == [(4, "invalid-object")]

    def test_one_undo_removes_whole_import(self, pipeline, threat_store, lantern_bundle):
        before = threat_store.export()
        pipeline.run(lantern_bundle, threat_store)
        threat_store.undo()
        assert threat_store.export() == before
        assert not threat_store.can_undo

    def test_reference_errors_are_indexed(self, pipeline, threat_store):
        objects = _actors_and_tools()
        objects += [
            stix_relationship("c9000000-0000-4000-8000-000000000000", "uses", ACTORS[0], "tool--99999999-0000-4000-8000-000000000000"),
            stix_relationship("c9100000-0000-4000-8000-000000000000", "impersonates", ACTORS[0], ACTORS[1]),
            stix_relationship("c9200000-0000-4000-8000-000000000000", "uses", TOOLS[0], ACTORS[0]),
            stix_relationship("c9300000-0000-4000-8000-000000000000", "uses", ACTORS[0], TOOLS[0]),
        ]
        summary = pipeline.run(stix_bundle(*objects), threat_store)
        assert [(e.index, e.code) for e in summary.errors] == [
            (6, "dangling-reference"),
            (7, "unmapped-relationship"),
            (8, "endpoint-type-violation"),
        ]
        assert summary.nodes_created == 6
        assert summary.edges_created == 1

    def test_reimport_warns_and_commits_nothing(self, pipeline, threat_store, lantern_bundle):
        pipeline.run(lantern_bundle, threat_store)
        summary = pipeline.run(lantern_bundle, threat_store)
        assert summary.nodes_created == 0
        assert summary.edges_created == 0
        codes = {w.code for w in summary.warnings}
        assert codes == {"unknown-type", "existing-node", "existing-edge"}
        assert len(threat_store.get_history()) == 1

    def test_exclude_filter_skips_dependent_relationships(self, threat_model, threat_store, lantern_bundle):
        pipeline = ImportPipeline(threat_model, ImportOptions(exclude_types=frozenset({"malware"})))
        summary = pipeline.run(lantern_bundle, threat_store)
        assert summary.nodes_created == 9
        assert summary.edges_created == 7
        assert summary.errors == []
        assert "filtered-reference" in {w.code for w in summary.warnings}
        assert summary.skipped == 2 + 1 + 1

    def test_relationships_can_be_left_out(self, threat_model, threat_store, lantern_bundle):
        pipeline = ImportPipeline(threat_model, ImportOptions(include_relationships=False))
        summary = pipeline.run(lantern_bundle, threat_store)
        assert summary.edges_created == 0
        assert summary.skipped == 8 + 1

    def test_empty_candidate_commits_nothing(self, pipeline, threat_store):
        note = stix_object("x-note", "f5000000-0000-4000-8000-000000000000")
        summary = pipeline.run(stix_bundle(note), threat_store)
        assert summary.nodes_created == 0
        assert not threat_store.can_undo

    def test_parse_error_leaves_store_untouched(self, pipeline, threat_store):
        with pytest.raises(ParseError):
            pipeline.run(b"not json", threat_store)
        assert threat_store.snapshot.nodes == {}

    def test_events(self, pipeline, threat_store, events):
        completed, failed = [], []
        events.subscribe(IMPORT_COMPLETED, completed.append)
        events.subscribe(VALIDATION_FAILED, failed.append)
        pipeline.run(_ten_objects_one_malformed(), threat_store)
        assert completed[0].payload["summary"].nodes_created == 9
        assert failed[0].payload["errors"][0]["index"] == 4


class _CancellingPipeline(ImportPipeline):
    """Cancels itself while staging, as a UI cancel button would mid-import."""

    def stage(self, candidate, snapshot, checker=None):
        accepted = super().stage(candidate, snapshot, checker)
        self.cancel()
        return accepted


class TestCancellation:
    def test_cancel_before_commit_discards_everything(self, threat_model, threat_store, lantern_bundle):
        pipeline = _CancellingPipeline(threat_model)
        before = threat_store.snapshot
        with pytest.raises(ImportCancelled):
            pipeline.run(lantern_bundle, threat_store)
        assert threat_store.snapshot is before
        assert not threat_store.can_undo
        assert pipeline.cancelled

    def test_flag_is_reset_for_next_run(self, threat_model, threat_store, lantern_bundle):
        pipeline = ImportPipeline(threat_model)
        pipeline.cancel()
        summary = pipeline.run(lantern_bundle, threat_store)
        assert summary.nodes_created == 11
        assert not pipeline.cancelled
