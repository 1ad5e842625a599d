"""Selfie quality validation."""
