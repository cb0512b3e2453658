# ==============================================
# NORMALIZATION
# ==============================================
#
# Classify raw values into value types and convert them to Python values.
#
# Modules:
# --------
# - type_detector.py → TypeDetector.discover / convert / precision_and_scale
#                      and the value type constants
#
# ==============================================

from .type_detector import TypeDetector, VALUE_TYPES

__all__ = ["TypeDetector", "VALUE_TYPES"]
