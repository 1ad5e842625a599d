"""
Core package init for selfiematch.

Finds an attendee's photos in an event gallery from a single selfie.
"""

__all__ = [
    "config",
    "detectors",
    "matching",
    "quality",
    "recognition",
    "viz",
    "io_utils",
    "types",
]
