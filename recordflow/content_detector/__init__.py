# ==============================================
# CONTENT LABEL DETECTION
# ==============================================
#
# Heuristics that tag schema properties with sensitivity labels
# (email, ssn, date-of-birth, secret, ...).
#
# Two families:
#   - value detectors (regex_detectors.py): look at the values
#   - property-name detectors (property_name_detectors.py): look at the name
#
# Modules:
# --------
# - content_label.py            → ContentLabel data class
# - base.py                     → ContentDetector base class
# - regex_detectors.py          → SSN, credit card, email, phone, IPv4, IPv6
# - property_name_detectors.py  → age, gender, date of birth, secret, ...
# - detector.py                 → registry, sampling, label merging
#
# ==============================================

from .base import ContentDetector
from .content_label import ContentLabel
from .detector import (
    CONTENT_DETECTORS,
    ContentLabelDetector,
    detectors_for_value_type,
    merge_content_labels,
)

__all__ = [
    "ContentDetector",
    "ContentLabel",
    "CONTENT_DETECTORS",
    "ContentLabelDetector",
    "detectors_for_value_type",
    "merge_content_labels",
]
