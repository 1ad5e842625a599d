"""Configuration dataclasses for selfie validation and photo matching."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple

from selfiematch.io_utils import load_yaml

LOGGER = logging.getLogger("selfiematch.config")

DETECTION_METHODS = ("tiny", "accurate", "both")
_METHOD_ALIASES = {"ssd": "accurate"}

VARIANT_ACCURATE = "accurate"
VARIANT_FAST = "fast"


def normalize_detection_method(method: str) -> str:
    value = str(method).strip().lower()
    value = _METHOD_ALIASES.get(value, value)
    if value not in DETECTION_METHODS:
        raise ValueError(f"Unknown detection method {method!r}; expected one of {DETECTION_METHODS}")
    return value


@dataclass(frozen=True)
class DetectorOptions:
    variant: str
    min_confidence: float
    input_size: int


ACCURATE_DETECTOR = DetectorOptions(variant=VARIANT_ACCURATE, min_confidence=0.2, input_size=640)
FAST_DETECTOR = DetectorOptions(variant=VARIANT_FAST, min_confidence=0.1, input_size=512)


@dataclass(frozen=True)
class MatchSettings:
    match_threshold: float = 50.0
    enable_angle_matching: bool = True
    detection_method: str = "both"
    batch_size: int = 3
    batch_delay_s: float = 0.05
    detect_timeout_s: Optional[float] = 30.0
    show_face_boxes: bool = True

    def __post_init__(self) -> None:
        if not 0.0 <= float(self.match_threshold) <= 100.0:
            raise ValueError(f"match_threshold must be within [0, 100], got {self.match_threshold}")
        if int(self.batch_size) < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.batch_delay_s < 0:
            raise ValueError("batch_delay_s must be non-negative")
        if self.detect_timeout_s is not None and self.detect_timeout_s <= 0:
            raise ValueError("detect_timeout_s must be positive or None")
        object.__setattr__(self, "match_threshold", float(self.match_threshold))
        object.__setattr__(self, "batch_size", int(self.batch_size))
        object.__setattr__(self, "detection_method", normalize_detection_method(self.detection_method))


@dataclass(frozen=True)
class ValidationThresholds:
    min_width: int = 120
    min_height: int = 120
    # Pixel statistics on the 0-255 scale
    dark_brightness: float = 30.0
    bright_brightness: float = 220.0
    min_contrast: float = 15.0
    # Face box area as percentage of image area
    min_face_area_pct: float = 3.0
    max_face_area_pct: float = 80.0
    max_upload_bytes: int = 10 * 1024 * 1024


@dataclass(frozen=True)
class ProviderConfig:
    model_name: str = "buffalo_l"
    fallback_model_name: Optional[str] = "buffalo_s"
    onnx_providers: Optional[Tuple[str, ...]] = None
    model_root: Optional[str] = None


@dataclass(frozen=True)
class AppConfig:
    matching: MatchSettings = field(default_factory=MatchSettings)
    validation: ValidationThresholds = field(default_factory=ValidationThresholds)
    accurate_detector: DetectorOptions = ACCURATE_DETECTOR
    fast_detector: DetectorOptions = FAST_DETECTOR
    provider: ProviderConfig = field(default_factory=ProviderConfig)

    def detector_options(self) -> Dict[str, DetectorOptions]:
        return {VARIANT_ACCURATE: self.accurate_detector, VARIANT_FAST: self.fast_detector}


def _pick(cls, section: Optional[Dict[str, Any]], name: str) -> Dict[str, Any]:
    """Keep the keys of ``section`` that are fields of ``cls``; log the rest."""
    if not section:
        return {}
    known = {f.name for f in fields(cls)}
    picked = {k: v for k, v in section.items() if k in known}
    unknown = sorted(set(section) - known)
    if unknown:
        LOGGER.warning("Ignoring unknown %s config keys: %s", name, unknown)
    return picked


def config_from_dict(data: Dict[str, Any]) -> AppConfig:
    """Build an :class:`AppConfig` from a parsed YAML mapping."""
    matching = MatchSettings(**_pick(MatchSettings, data.get("matching"), "matching"))
    validation = ValidationThresholds(**_pick(ValidationThresholds, data.get("validation"), "validation"))

    detectors = data.get("detectors") or {}
    accurate = _detector_options(ACCURATE_DETECTOR, detectors.get(VARIANT_ACCURATE))
    fast = _detector_options(FAST_DETECTOR, detectors.get(VARIANT_FAST))

    provider_section = _pick(ProviderConfig, data.get("provider"), "provider")
    onnx = provider_section.get("onnx_providers")
    if onnx is not None:
        provider_section["onnx_providers"] = tuple(str(p) for p in _as_sequence(onnx))
    provider = ProviderConfig(**provider_section)

    return AppConfig(
        matching=matching,
        validation=validation,
        accurate_detector=accurate,
        fast_detector=fast,
        provider=provider,
    )


def load_config(path: Optional[Path]) -> AppConfig:
    """Load configuration from YAML; ``None`` yields defaults."""
    if path is None:
        return AppConfig()
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    return config_from_dict(load_yaml(path))


def _detector_options(base: DetectorOptions, section: Optional[Dict[str, Any]]) -> DetectorOptions:
    overrides = _pick(DetectorOptions, section, f"detectors.{base.variant}")
    # The variant is fixed by the section the options came from
    overrides.pop("variant", None)
    if "min_confidence" in overrides:
        overrides["min_confidence"] = float(overrides["min_confidence"])
    if "input_size" in overrides:
        overrides["input_size"] = int(overrides["input_size"])
    return replace(base, **overrides)


def _as_sequence(value: Any) -> Sequence[Any]:
    if isinstance(value, (list, tuple)):
        return value
    return [value]
