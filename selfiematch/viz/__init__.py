"""Match overlays."""
