# ==============================================
# ContentDetector (base class)
# ==============================================
#
# PURPOSE:
#   One heuristic that looks for one kind of content (email addresses,
#   SSNs, a property called "password", ...) in the values of ONE value
#   type of ONE property. Instances are stateful: they count how many
#   values were tested and how many matched.
#
# CLASS ATTRIBUTES (set by subclasses):
#   - label: str                        → label id written to the schema
#   - applicable_value_types: tuple     → value types worth testing
#
# Methods:
# --------
#   - inspect_value(property_name, value)  → test one value, update counts
#   - matches(property_name, value) -> bool (abstract)
#   - is_threshold_met() -> bool           → enough evidence to label?
#   - get_content_label(property_name) -> ContentLabel
#
# ==============================================

from abc import ABC, abstractmethod
from typing import Any, Tuple

from .content_label import ContentLabel


class ContentDetector(ABC):
    """Evidence accumulator for one content label."""

    label: str = ""
    applicable_value_types: Tuple[str, ...] = ()

    # A label is applied when more than this share of tested values matched
    THRESHOLD = 2 / 3

    def __init__(self):
        self.values_tested_count = 0
        self.occurrence_count = 0

    @property
    def detector_id(self) -> str:
        return type(self).__name__

    def inspect_value(self, property_name: str, value: Any) -> None:
        self.values_tested_count += 1
        if self.matches(property_name, value):
            self.occurrence_count += 1

    @abstractmethod
    def matches(self, property_name: str, value: Any) -> bool:
        ...

    def is_threshold_met(self) -> bool:
        if self.values_tested_count == 0:
            return False
        return self.occurrence_count / self.values_tested_count > self.THRESHOLD

    def get_content_label(self, property_name: str) -> ContentLabel:
        return ContentLabel(
            label=self.label,
            occurrence_count=self.occurrence_count,
            values_tested_count=self.values_tested_count,
            hidden=False,
            applied_by_content_detector=self.detector_id,
        )
