# ==============================================
# Sink State
# ==============================================
#
# PURPOSE:
#   What a sink remembers between runs so the next run can resume an
#   incremental transfer (or skip an unchanged stream).
#
# PERSISTED SHAPE (to_dict / from_dict):
#
#   { "packageVersion": "1.0.0",
#     "timestamp": "2024-05-01T10:00:00+00:00",
#     "streamSets": {
#       "<streamSetSlug>": {
#         "streamStates": {
#           "<streamSlug>": {
#             "streamOffset": 1234,
#             "updateHash": "etag-or-sha256" | null,
#             "schemaStates": { "<schemaSlug>": { "lastOffset": 1234 } }
#           } } } } }
#
# OWNERSHIP:
#   During a run the orchestrator owns exactly one SinkState; only the
#   SinkStateTracker stages mutate it. The sink persists it in its commit
#   phase, after the written data has been committed.
#
# ==============================================

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class SinkStateKey:
    """Identifies the state of one package in one sink."""
    catalog_slug: str
    package_slug: str
    package_major_version: int

    def as_string(self) -> str:
        return f"{self.catalog_slug}/{self.package_slug}/v{self.package_major_version}"

    def file_name(self) -> str:
        return f"{self.catalog_slug}__{self.package_slug}__v{self.package_major_version}.json"


@dataclass
class SchemaState:
    last_offset: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"lastOffset": self.last_offset}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SchemaState":
        return cls(last_offset=data.get("lastOffset"))


@dataclass
class StreamState:
    stream_offset: Optional[int] = None
    update_hash: Optional[str] = None
    schema_states: Dict[str, SchemaState] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "streamOffset": self.stream_offset,
            "updateHash": self.update_hash,
            "schemaStates": {slug: state.to_dict() for slug, state in self.schema_states.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StreamState":
        return cls(
            stream_offset=data.get("streamOffset"),
            update_hash=data.get("updateHash"),
            schema_states={
                slug: SchemaState.from_dict(state)
                for slug, state in (data.get("schemaStates") or {}).items()
            },
        )


@dataclass
class StreamSetState:
    stream_states: Dict[str, StreamState] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "streamStates": {slug: state.to_dict() for slug, state in self.stream_states.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StreamSetState":
        return cls(
            stream_states={
                slug: StreamState.from_dict(state)
                for slug, state in (data.get("streamStates") or {}).items()
            },
        )


@dataclass
class SinkState:
    package_version: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    stream_sets: Dict[str, StreamSetState] = field(default_factory=dict)

    def get_stream_state(self, stream_set_slug: str, stream_slug: str) -> Optional[StreamState]:
        stream_set = self.stream_sets.get(stream_set_slug)
        if stream_set is None:
            return None
        return stream_set.stream_states.get(stream_slug)

    def ensure_stream_state(self, stream_set_slug: str, stream_slug: str) -> StreamState:
        stream_set = self.stream_sets.setdefault(stream_set_slug, StreamSetState())
        return stream_set.stream_states.setdefault(stream_slug, StreamState())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "packageVersion": self.package_version,
            "timestamp": self.timestamp.isoformat(),
            "streamSets": {slug: state.to_dict() for slug, state in self.stream_sets.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SinkState":
        timestamp = data.get("timestamp")
        return cls(
            package_version=data.get("packageVersion", ""),
            timestamp=datetime.fromisoformat(timestamp) if timestamp else datetime.now(timezone.utc),
            stream_sets={
                slug: StreamSetState.from_dict(state)
                for slug, state in (data.get("streamSets") or {}).items()
            },
        )
