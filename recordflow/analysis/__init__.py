# ==============================================
# ANALYSIS: SCHEMA & STATISTICS INFERENCE
# ==============================================
#
# This package observes records and describes them: which properties
# exist, which value types each one takes, value statistics per type,
# and which content labels apply.
#
# Modules:
# --------
# - value_stats.py       → ValueTypeStatistics (per property, per value type)
# - schema.py            → PropertyDescriptor, SchemaDescriptor, PackageDescriptor
# - schema_inspector.py  → SchemaInspector / StatsStage: records → schemas
# - deconflict.py        → type conflicts for strongly typed sinks
#
# ==============================================

from recordflow.content_detector.content_label import ContentLabel
from .value_stats import ValueTypeStatistics
from .schema import PropertyDescriptor, SchemaDescriptor, PackageDescriptor
from .schema_inspector import SchemaInspector, StatsStage
from .deconflict import (
    DeconflictOption,
    DeconflictRule,
    TypeConflict,
    SKIP_RECORD,
    find_type_conflicts,
    get_deconflict_choices,
    build_deconflict_rules,
    update_schema_with_deconflict_options,
    resolve_conflict,
)

__all__ = [
    "ContentLabel",
    "ValueTypeStatistics",
    "PropertyDescriptor",
    "SchemaDescriptor",
    "PackageDescriptor",
    "SchemaInspector",
    "StatsStage",
    "DeconflictOption",
    "DeconflictRule",
    "TypeConflict",
    "SKIP_RECORD",
    "find_type_conflicts",
    "get_deconflict_choices",
    "build_deconflict_rules",
    "update_schema_with_deconflict_options",
    "resolve_conflict",
]
