# ==============================================
# SchemaInspector
# ==============================================
#
# PURPOSE:
#   Observe batches of records and build / update one SchemaDescriptor
#   per schema slug, with per-property, per-value-type statistics and
#   content labels.
#
# PER RECORD:
#   1. schema.record_count += 1
#   2. For every key present in the record:
#        - create the PropertyDescriptor on first sight (its
#          records_not_present starts at the number of records seen
#          before it appeared)
#        - discover the value type (TypeDetector.discover)
#        - apply widening: integer + number on one property → number,
#          existing integer statistics are relabelled as number
#        - update the ValueTypeStatistics for that type
#        - record the type in the property's format list
#        - feed the converted value to the content label detector
#        - object values are inspected recursively (depth ≤ 10)
#   3. Properties the record does not have: records_not_present += 1
#   4. The converted record is kept as a sample (at most 100 per schema)
#
# AT STREAM END (finish):
#   Content labels are merged into the statistics of every schema.
#
# CLASSES:
# --------
# - SchemaInspector  → inspect_batch(record_contexts), finish()
# - StatsStage       → PipelineStage that passes chunks through unchanged
#                      while feeding them to a SchemaInspector
#
# ==============================================

import random
from typing import Any, Callable, Dict, List, Optional

from recordflow.content_detector.detector import ContentLabelDetector
from recordflow.normalization.type_detector import (
    TypeDetector, INTEGER, NUMBER, OBJECT, NULL,
)
from recordflow.pipeline.stage import PipelineStage
from .schema import PropertyDescriptor, SchemaDescriptor
from .value_stats import ValueTypeStatistics


MAX_INSPECTION_DEPTH = 10


class SchemaInspector:
    """
    Accumulates schema statistics across any number of record batches.
    """

    def __init__(
        self,
        schemas: Optional[Dict[str, SchemaDescriptor]] = None,
        rng: Optional[random.Random] = None,
        progress_callback: Optional[Callable[[int], None]] = None,
    ):
        """
        Args:
            schemas: Existing schemas to keep updating (slug -> descriptor)
            rng: Random source for content label sampling
            progress_callback: Called with the total record count after
                every batch
        """
        self.schemas: Dict[str, SchemaDescriptor] = schemas if schemas is not None else {}
        self.records_inspected = 0
        self._rng = rng or random.Random()
        self._progress_callback = progress_callback
        self._label_detectors: Dict[str, ContentLabelDetector] = {}

    def inspect_batch(self, record_contexts: List[Any]) -> None:
        """
        Inspect a batch of records.

        Args:
            record_contexts: RecordContext objects (anything with `record`
                and `schema_slug` attributes)
        """
        for context in record_contexts:
            self.inspect_record(context.schema_slug, context.record)

        if self._progress_callback is not None:
            self._progress_callback(self.records_inspected)

    def inspect_record(self, schema_slug: str, record: Dict[str, Any]) -> None:
        schema = self.schemas.get(schema_slug)
        if schema is None:
            schema = SchemaDescriptor(title=schema_slug)
            self.schemas[schema_slug] = schema

        detector = self._label_detectors.get(schema_slug)
        if detector is None:
            detector = ContentLabelDetector(self._rng)
            self._label_detectors[schema_slug] = detector

        records_before = schema.record_count
        schema.record_count += 1
        self.records_inspected += 1

        converted = self._inspect_object(schema.properties, record, detector, records_before, 0)
        schema.add_sample_record(converted)

    def finish(self) -> Dict[str, SchemaDescriptor]:
        """Apply content labels and return the schemas."""
        for slug, schema in self.schemas.items():
            detector = self._label_detectors.get(slug)
            if detector is not None:
                detector.apply_labels_to_properties(schema.properties)
        return self.schemas

    # ======================================
    # Internal
    # ======================================
    def _inspect_object(
        self,
        properties: Dict[str, PropertyDescriptor],
        record: Dict[str, Any],
        detector: ContentLabelDetector,
        records_before: int,
        depth: int,
    ) -> Dict[str, Any]:
        converted: Dict[str, Any] = {}

        for name, raw_value in record.items():
            prop = properties.get(name)
            if prop is None:
                prop = PropertyDescriptor(title=name, records_not_present=records_before)
                properties[name] = prop

            value_type = TypeDetector.discover(raw_value)
            value_type = self._widen(prop, value_type)
            value = TypeDetector.convert(raw_value, value_type)

            stats = prop.types.get(value_type)
            if stats is None:
                stats = ValueTypeStatistics(value_type=value_type)
                prop.types[value_type] = stats

            if value_type == OBJECT and depth < MAX_INSPECTION_DEPTH:
                if prop.properties is None:
                    prop.properties = {}
                value = self._inspect_object(
                    prop.properties,
                    value,
                    detector.get_object_detector(name),
                    stats.record_count,
                    depth + 1,
                )

            stats.update(value, raw_value)
            prop.add_format(value_type)

            if value_type != NULL:
                detector.inspect_value(name, value, value_type)

            converted[name] = value

        for name, prop in properties.items():
            if name not in record:
                prop.records_not_present += 1

        return converted

    @staticmethod
    def _widen(prop: PropertyDescriptor, value_type: str) -> str:
        """integer and number on the same property collapse into number."""
        if value_type == NUMBER and INTEGER in prop.types:
            integer_stats = prop.types.pop(INTEGER)
            number_stats = prop.types.get(NUMBER)
            if number_stats is None:
                integer_stats.relabel(NUMBER)
                prop.types[NUMBER] = integer_stats
            prop.replace_format(INTEGER, NUMBER)
            return NUMBER

        if value_type == INTEGER and NUMBER in prop.types:
            return NUMBER

        return value_type


class StatsStage(PipelineStage):
    """Pass-through stage that inspects every chunk of RecordContexts."""

    def __init__(self, inspector: SchemaInspector, name: str = "", max_pending: int = 16):
        super().__init__(name=name, max_pending=max_pending)
        self.inspector = inspector

    async def transform(self, chunk: Any) -> None:
        batch = chunk if isinstance(chunk, list) else [chunk]
        self.inspector.inspect_batch(batch)
        await self.push(chunk)

    async def flush(self) -> None:
        self.inspector.finish()
