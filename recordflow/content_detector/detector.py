# ==============================================
# ContentLabelDetector
# ==============================================
#
# PURPOSE:
#   Runs every applicable content detector over the values of each
#   (property, value type) and, at the end, writes the resulting labels
#   into the schema's ValueTypeStatistics.
#
# REGISTRY:
#   CONTENT_DETECTORS lists every detector class. Each class declares the
#   value types it applies to; detectors_for_value_type() picks them.
#
# SAMPLING:
#   A detector instance tests every value until it has tested
#   SAMPLING_THRESHOLD values. After that each further value is tested
#   with probability 1 / values_tested_count. The random source is
#   injected (seedable) so results are reproducible.
#
# NESTED OBJECTS:
#   Object-valued properties get their own child ContentLabelDetector
#   (get_object_detector), sharing the random source.
#
# MERGING (apply_labels_to_properties):
#   - a fresh label with occurrence 0 is dropped, unless a prior label
#     with the same id exists, in which case the prior one is kept as is
#   - a prior label marked hidden stays hidden
#   - prior labels nothing re-detected are kept
#   Running the same input twice therefore yields the same labels.
#
# ==============================================

import random
from typing import Any, Dict, List, Optional, Type

from .content_label import ContentLabel
from .base import ContentDetector
from .regex_detectors import (
    SocialSecurityNumberDetector,
    CreditCardNumberDetector,
    EmailAddressDetector,
    PhoneNumberDetector,
    IpV4AddressDetector,
    IpV6AddressDetector,
)
from .property_name_detectors import (
    AgeDetector,
    GenderDetector,
    DateOfBirthDetector,
    DriversLicenseDetector,
    PassportDetector,
    UsernameDetector,
    EthnicityDetector,
    SecretDetector,
    NationalProviderIdentifierDetector,
    GeoLatitudeDetector,
    GeoLongitudeDetector,
)


CONTENT_DETECTORS: List[Type[ContentDetector]] = [
    SocialSecurityNumberDetector,
    CreditCardNumberDetector,
    IpV6AddressDetector,
    IpV4AddressDetector,
    PhoneNumberDetector,
    EmailAddressDetector,
    GenderDetector,
    DateOfBirthDetector,
    DriversLicenseDetector,
    AgeDetector,
    UsernameDetector,
    EthnicityDetector,
    SecretDetector,
    PassportDetector,
    NationalProviderIdentifierDetector,
    GeoLatitudeDetector,
    GeoLongitudeDetector,
]

SAMPLING_THRESHOLD = 100


def detectors_for_value_type(
    value_type: str,
    detector_classes: Optional[List[Type[ContentDetector]]] = None,
) -> List[Type[ContentDetector]]:
    classes = CONTENT_DETECTORS if detector_classes is None else detector_classes
    return [cls for cls in classes if value_type in cls.applicable_value_types]


def merge_content_labels(
    prior_labels: List[ContentLabel],
    fresh_labels: List[ContentLabel],
) -> List[ContentLabel]:
    """
    Combine labels from a previous run with freshly detected ones.

    Args:
        prior_labels: Labels already stored on the statistics
        fresh_labels: Labels computed by this run

    Returns:
        The merged label list
    """
    prior_by_label = {label.label: label for label in prior_labels}
    merged: List[ContentLabel] = []
    handled = set()

    for fresh in fresh_labels:
        prior = prior_by_label.get(fresh.label)
        handled.add(fresh.label)
        if fresh.occurrence_count == 0:
            if prior is not None:
                merged.append(prior)
            continue
        if prior is not None and prior.hidden:
            fresh.hidden = True
        merged.append(fresh)

    for prior in prior_labels:
        if prior.label not in handled:
            merged.append(prior)

    return merged


class ContentLabelDetector:
    """Per-schema (or per nested object) content label detection."""

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        detector_classes: Optional[List[Type[ContentDetector]]] = None,
    ):
        """
        Args:
            rng: Random source for sampling. Defaults to an unseeded Random.
            detector_classes: Override the registry (tests, custom setups)
        """
        self._rng = rng or random.Random()
        self._detector_classes = detector_classes
        # property -> value type -> detector instances
        self._detectors: Dict[str, Dict[str, List[ContentDetector]]] = {}
        self._object_detectors: Dict[str, "ContentLabelDetector"] = {}

    def inspect_value(self, property_name: str, value: Any, value_type: str) -> None:
        by_type = self._detectors.setdefault(property_name, {})
        detectors = by_type.get(value_type)
        if detectors is None:
            detectors = [
                cls() for cls in detectors_for_value_type(value_type, self._detector_classes)
            ]
            by_type[value_type] = detectors

        for detector in detectors:
            tested = detector.values_tested_count
            if tested > SAMPLING_THRESHOLD and self._rng.random() >= 1 / tested:
                continue
            detector.inspect_value(property_name, value)

    def get_object_detector(self, property_name: str) -> "ContentLabelDetector":
        detector = self._object_detectors.get(property_name)
        if detector is None:
            detector = ContentLabelDetector(self._rng, self._detector_classes)
            self._object_detectors[property_name] = detector
        return detector

    def get_detectors(self, property_name: str, value_type: str) -> List[ContentDetector]:
        return self._detectors.get(property_name, {}).get(value_type, [])

    def apply_labels_to_properties(self, properties: Dict[str, Any]) -> None:
        """
        Write detected labels into each property's value type statistics.

        Args:
            properties: Mapping of property name -> PropertyDescriptor
        """
        for name, prop in properties.items():
            for value_type, stats in prop.types.items():
                fresh = [
                    detector.get_content_label(name)
                    for detector in self.get_detectors(name, value_type)
                    if detector.is_threshold_met()
                ]
                stats.content_labels = merge_content_labels(stats.content_labels, fresh)

            child = self._object_detectors.get(name)
            if child is not None and prop.properties:
                child.apply_labels_to_properties(prop.properties)
