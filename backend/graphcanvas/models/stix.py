"""STIX 2.1 shapes consumed by the import pipeline.

Only the fields the pipeline reads or requires are declared; everything else is
kept through ``extra="allow"`` and carried verbatim into the mapped element.
See https://docs.oasis-open.org/cti/stix/v2.1/
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, model_validator

STIX_ID_PATTERN = r"^[a-z][a-z0-9-]*--[0-9A-Za-z-]+$"


class StixModel(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)


class StixBundle(StixModel):
    type: str = "bundle"
    id: Optional[str] = None
    spec_version: Optional[str] = None
    objects: list[Any]


class StixCommon(StixModel):
    type: str
    id: str = Field(pattern=STIX_ID_PATTERN)
    spec_version: Optional[str] = None
    created: AwareDatetime
    modified: AwareDatetime

    @model_validator(mode="after")
    def _modified_not_before_created(self) -> StixCommon:
        if self.modified < self.created:
            raise ValueError("modified must not be earlier than created")
        return self


class KillChainPhase(StixModel):
    kill_chain_name: str
    phase_name: str


class ExternalReference(StixModel):
    source_name: str
    description: Optional[str] = None
    url: Optional[str] = None
    external_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Domain objects
# ---------------------------------------------------------------------------


class NamedObject(StixCommon):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    external_references: list[ExternalReference] = []


class AttackPattern(NamedObject):
    type: Literal["attack-pattern"]
    kill_chain_phases: list[KillChainPhase] = []


class Campaign(NamedObject):
    type: Literal["campaign"]


class CourseOfAction(NamedObject):
    type: Literal["course-of-action"]


class Grouping(StixCommon):
    type: Literal["grouping"]
    name: Optional[str] = None
    context: str = Field(min_length=1)
    object_refs: list[str] = Field(min_length=1)


class Identity(NamedObject):
    type: Literal["identity"]
    identity_class: Optional[str] = None


class Indicator(StixCommon):
    type: Literal["indicator"]
    name: Optional[str] = None
    pattern: str = Field(min_length=1)
    pattern_type: str = Field(min_length=1)
    valid_from: str = Field(min_length=1)
    kill_chain_phases: list[KillChainPhase] = []


class Infrastructure(NamedObject):
    type: Literal["infrastructure"]


class IntrusionSet(NamedObject):
    type: Literal["intrusion-set"]


class Location(StixCommon):
    type: Literal["location"]
    name: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)


class Malware(StixCommon):
    type: Literal["malware"]
    name: Optional[str] = None
    is_family: bool
    malware_types: list[str] = []
    kill_chain_phases: list[KillChainPhase] = []


class ThreatActor(NamedObject):
    type: Literal["threat-actor"]
    threat_actor_types: list[str] = []


class Tool(NamedObject):
    type: Literal["tool"]
    kill_chain_phases: list[KillChainPhase] = []


class Vulnerability(NamedObject):
    type: Literal["vulnerability"]


# ---------------------------------------------------------------------------
# Relationship objects
# ---------------------------------------------------------------------------


class Relationship(StixCommon):
    type: Literal["relationship"]
    relationship_type: str = Field(min_length=1)
    source_ref: str = Field(pattern=STIX_ID_PATTERN)
    target_ref: str = Field(pattern=STIX_ID_PATTERN)
    description: Optional[str] = None


class Sighting(StixCommon):
    type: Literal["sighting"]
    sighting_of_ref: str = Field(pattern=STIX_ID_PATTERN)
    where_sighted_refs: list[str] = []
    count: Optional[int] = Field(default=None, ge=0)


RELATIONSHIP_TYPES = frozenset({"relationship", "sighting"})
