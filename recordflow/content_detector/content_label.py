from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class ContentLabel:
    """
    A sensitivity / semantic category attached to a property value type,
    e.g. "email" or "ssn".

    `hidden` is an operator override: a hidden label stays hidden when
    detection runs again, whatever the new counts are.
    """

    label: str
    occurrence_count: int = 0
    values_tested_count: int = 0
    hidden: bool = False
    applied_by_content_detector: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "occurrence_count": self.occurrence_count,
            "values_tested_count": self.values_tested_count,
            "hidden": self.hidden,
            "applied_by_content_detector": self.applied_by_content_detector,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContentLabel":
        return cls(
            label=data["label"],
            occurrence_count=data.get("occurrence_count", 0),
            values_tested_count=data.get("values_tested_count", 0),
            hidden=data.get("hidden", False),
            applied_by_content_detector=data.get("applied_by_content_detector"),
        )
