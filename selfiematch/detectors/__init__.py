"""Face descriptor providers and the detection policy."""
