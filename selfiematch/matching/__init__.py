"""Batched photo matching, media loading and result aggregation."""
