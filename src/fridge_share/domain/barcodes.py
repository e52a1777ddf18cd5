"""Domain models for barcode prefill."""

from dataclasses import dataclass


@dataclass(frozen=True)
class BarcodePrefill:
    """Form defaults for a scanned barcode."""

    barcode: str
    name: str
    unit: str | None
    source: str
