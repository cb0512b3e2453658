# ==============================================
# Schema Descriptors
# ==============================================
#
# PURPOSE:
#   Data classes describing what the inspector learned about a set of
#   records, and the package definition a fetch run works from.
#
# CLASSES:
# --------
# - PropertyDescriptor (dataclass)
#     title: str                                → property (column) name
#     types: dict[str, ValueTypeStatistics]     → one entry per value type seen
#     format: str | None                        → comma-joined observed value types
#     records_not_present: int                  → records that lacked the property
#     hidden: bool                              → excluded from transfers
#     properties: dict | None                   → nested properties (object values)
#
# - SchemaDescriptor (dataclass)
#     title: str                                → the schema slug
#     properties: dict[str, PropertyDescriptor]
#     record_count: int
#     sample_records: list[dict]                → at most SAMPLE_RECORD_COUNT_MAX
#
# - PackageDescriptor (dataclass)
#     slug, version, schemas: dict[str, SchemaDescriptor]
#
# All three round-trip through to_dict() / from_dict() (JSON-safe).
#
# ==============================================

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from recordflow.normalization.json_values import to_json_safe
from recordflow.content_detector.content_label import ContentLabel
from .value_stats import ValueTypeStatistics


SAMPLE_RECORD_COUNT_MAX = 100


@dataclass
class PropertyDescriptor:
    """Everything known about one property of a schema."""

    title: str
    types: Dict[str, ValueTypeStatistics] = field(default_factory=dict)
    format: Optional[str] = None
    records_not_present: int = 0
    hidden: bool = False
    properties: Optional[Dict[str, "PropertyDescriptor"]] = None

    @property
    def value_types(self) -> List[str]:
        """Observed value types, in order of first observation."""
        if not self.format:
            return []
        return self.format.split(",")

    def add_format(self, value_type: str) -> None:
        formats = self.value_types
        if value_type not in formats:
            formats.append(value_type)
            self.format = ",".join(formats)

    def replace_format(self, old: str, new: str) -> None:
        formats = []
        for value_type in self.value_types:
            value_type = new if value_type == old else value_type
            if value_type not in formats:
                formats.append(value_type)
        self.format = ",".join(formats) if formats else None

    @property
    def content_labels(self) -> List[ContentLabel]:
        labels = []
        for stats in self.types.values():
            labels.extend(stats.content_labels)
        return labels

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "title": self.title,
            "format": self.format,
            "records_not_present": self.records_not_present,
            "hidden": self.hidden,
            "types": {name: stats.to_dict() for name, stats in self.types.items()},
        }
        if self.properties is not None:
            data["properties"] = {name: prop.to_dict() for name, prop in self.properties.items()}
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PropertyDescriptor":
        nested = data.get("properties")
        return cls(
            title=data["title"],
            types={
                name: ValueTypeStatistics.from_dict(stats)
                for name, stats in data.get("types", {}).items()
            },
            format=data.get("format"),
            records_not_present=data.get("records_not_present", 0),
            hidden=data.get("hidden", False),
            properties=(
                {name: cls.from_dict(prop) for name, prop in nested.items()}
                if nested is not None else None
            ),
        )


@dataclass
class SchemaDescriptor:
    """One record shape within a package."""

    title: str
    properties: Dict[str, PropertyDescriptor] = field(default_factory=dict)
    record_count: int = 0
    sample_records: List[Dict[str, Any]] = field(default_factory=list)

    def add_sample_record(self, record: Dict[str, Any]) -> None:
        if len(self.sample_records) < SAMPLE_RECORD_COUNT_MAX:
            self.sample_records.append(record)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "record_count": self.record_count,
            "properties": {name: prop.to_dict() for name, prop in self.properties.items()},
            "sample_records": to_json_safe(self.sample_records),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SchemaDescriptor":
        return cls(
            title=data["title"],
            properties={
                name: PropertyDescriptor.from_dict(prop)
                for name, prop in data.get("properties", {}).items()
            },
            record_count=data.get("record_count", 0),
            sample_records=list(data.get("sample_records", [])),
        )


@dataclass
class PackageDescriptor:
    """A versioned set of schemas: what a fetch run transfers."""

    slug: str
    version: str = "1.0.0"
    schemas: Dict[str, SchemaDescriptor] = field(default_factory=dict)

    @property
    def major_version(self) -> int:
        return int(self.version.split(".")[0])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "slug": self.slug,
            "version": self.version,
            "schemas": {slug: schema.to_dict() for slug, schema in self.schemas.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PackageDescriptor":
        return cls(
            slug=data["slug"],
            version=data.get("version", "1.0.0"),
            schemas={
                slug: SchemaDescriptor.from_dict(schema)
                for slug, schema in data.get("schemas", {}).items()
            },
        )
