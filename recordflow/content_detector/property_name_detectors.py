"""
Property-name detectors: the label depends only on what the property is
called, not on its values. Their threshold is always met; the emitted
label has occurrence 1 when the name matches and occurrence 0 (hidden)
when it does not.

Names are split into lowercase words first, so "dateOfBirth",
"date_of_birth" and "DATE-OF-BIRTH" all become ("date", "of", "birth").
A detector matches when one of its word sequences appears contiguously.
"""

import re
from typing import Any, List, Tuple

from recordflow.normalization.type_detector import (
    STRING, INTEGER, NUMBER, BOOLEAN, DATE, DATE_TIME,
)
from .base import ContentDetector
from .content_label import ContentLabel


_WORD_PATTERN = re.compile(r"[A-Z]?[a-z]+|[A-Z]+(?![a-z])|\d+")


def split_property_name(name: str) -> List[str]:
    return [word.lower() for word in _WORD_PATTERN.findall(name)]


class PropertyNameDetector(ContentDetector):
    """Labels a property by its name."""

    name_patterns: Tuple[Tuple[str, ...], ...] = ()
    applicable_value_types = (STRING, INTEGER, NUMBER, BOOLEAN, DATE, DATE_TIME)

    def matches(self, property_name: str, value: Any) -> bool:
        return self.name_matches(property_name)

    def name_matches(self, property_name: str) -> bool:
        words = split_property_name(property_name)
        for sequence in self.name_patterns:
            size = len(sequence)
            for start in range(len(words) - size + 1):
                if tuple(words[start:start + size]) == sequence:
                    return True
        return False

    def is_threshold_met(self) -> bool:
        return True

    def get_content_label(self, property_name: str) -> ContentLabel:
        matched = self.name_matches(property_name)
        return ContentLabel(
            label=self.label,
            occurrence_count=1 if matched else 0,
            values_tested_count=self.values_tested_count,
            hidden=not matched,
            applied_by_content_detector=self.detector_id,
        )


class AgeDetector(PropertyNameDetector):
    label = "age"
    name_patterns = (("age",),)


class GenderDetector(PropertyNameDetector):
    label = "gender"
    name_patterns = (("gender",), ("sex",))


class DateOfBirthDetector(PropertyNameDetector):
    label = "date-of-birth"
    name_patterns = (("dob",), ("date", "of", "birth"), ("birth", "date"), ("birthdate",), ("birthday",))


class DriversLicenseDetector(PropertyNameDetector):
    label = "drivers-license"
    name_patterns = (("drivers", "license"), ("driver", "license"), ("driving", "licence"), ("dl", "number"))


class PassportDetector(PropertyNameDetector):
    label = "passport"
    name_patterns = (("passport",),)


class UsernameDetector(PropertyNameDetector):
    label = "username"
    name_patterns = (("username",), ("user", "name"), ("login",))


class EthnicityDetector(PropertyNameDetector):
    label = "ethnicity"
    name_patterns = (("ethnicity",), ("race",))


class SecretDetector(PropertyNameDetector):
    label = "secret"
    name_patterns = (
        ("password",), ("passwd",), ("secret",), ("token",), ("api", "key"), ("apikey",),
    )


class NationalProviderIdentifierDetector(PropertyNameDetector):
    label = "npi"
    name_patterns = (("npi",),)


class GeoLatitudeDetector(PropertyNameDetector):
    label = "geo-latitude"
    name_patterns = (("lat",), ("latitude",))
    applicable_value_types = (STRING, NUMBER)


class GeoLongitudeDetector(PropertyNameDetector):
    label = "geo-longitude"
    name_patterns = (("lon",), ("lng",), ("longitude",))
    applicable_value_types = (STRING, NUMBER)
