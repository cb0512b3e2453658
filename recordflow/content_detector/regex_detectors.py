"""
Value-content detectors: a value counts as an occurrence when it matches
the detector's pattern. A label is applied once more than two thirds of
the tested values matched.
"""

import ipaddress
import re
from typing import Any, Optional, Pattern

from recordflow.normalization.type_detector import STRING, INTEGER
from .base import ContentDetector


class RegexContentDetector(ContentDetector):
    """Matches stripped string values against `pattern` (full match)."""

    pattern: Optional[Pattern] = None
    applicable_value_types = (STRING,)

    def matches(self, property_name: str, value: Any) -> bool:
        if value is None or self.pattern is None:
            return False
        return bool(self.pattern.fullmatch(str(value).strip()))


class SocialSecurityNumberDetector(RegexContentDetector):
    label = "ssn"
    pattern = re.compile(r"(?!000|666|9\d\d)\d{3}-(?!00)\d{2}-(?!0000)\d{4}")


class EmailAddressDetector(RegexContentDetector):
    label = "email"
    pattern = re.compile(r"[A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}")


class PhoneNumberDetector(RegexContentDetector):
    label = "phone"
    pattern = re.compile(
        r"(\+?\d{1,3}[ .\-]?)?(\(\d{3}\)|\d{3})[ .\-]?\d{3}[ .\-]?\d{4}"
    )


class CreditCardNumberDetector(RegexContentDetector):
    """13-19 digits, optionally grouped with spaces/dashes, Luhn-valid."""

    label = "credit-card"
    pattern = re.compile(r"(?:\d[ \-]?){12,18}\d")
    applicable_value_types = (STRING, INTEGER)

    def matches(self, property_name: str, value: Any) -> bool:
        if not super().matches(property_name, value):
            return False
        digits = [int(ch) for ch in str(value) if ch.isdigit()]
        return self._luhn_valid(digits)

    @staticmethod
    def _luhn_valid(digits) -> bool:
        total = 0
        for index, digit in enumerate(reversed(digits)):
            if index % 2 == 1:
                digit *= 2
                if digit > 9:
                    digit -= 9
            total += digit
        return total % 10 == 0


class IpV4AddressDetector(ContentDetector):
    label = "ipv4"
    applicable_value_types = (STRING,)
    version = 4

    def matches(self, property_name: str, value: Any) -> bool:
        if not isinstance(value, str):
            return False
        try:
            return ipaddress.ip_address(value.strip()).version == self.version
        except ValueError:
            return False


class IpV6AddressDetector(IpV4AddressDetector):
    label = "ipv6"
    version = 6
