"""
Vocabulary — Enumerated types forming the shared language of the system.
"""

from opmeter.vocabulary.enums import (
    Marker,
    MeterState,
)

__all__ = [
    "Marker",
    "MeterState",
]
