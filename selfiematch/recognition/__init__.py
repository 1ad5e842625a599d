"""Pose classification, angle compatibility and embedding matching."""
