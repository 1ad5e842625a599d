"""Face descriptor provider contract, capability handle and detection policy.

A provider turns a decoded image into :class:`Detection` objects (box, score,
68-point landmarks and a fixed-length embedding). Providers are blocking; the
handle runs them off the event loop so several images can be in flight at once.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Set, Tuple

import numpy as np

from selfiematch.config import (
    ACCURATE_DETECTOR,
    FAST_DETECTOR,
    VARIANT_ACCURATE,
    VARIANT_FAST,
    DetectorOptions,
    normalize_detection_method,
)
from selfiematch.types import Detection

LOGGER = logging.getLogger("selfiematch.detectors.provider")

STATUS_LOADING = "loading"
STATUS_READY = "ready"
STATUS_LIMITED = "limited"
STATUS_FAILED = "failed"

DEFAULT_MIN_CONFIDENCE = 0.4
DEFAULT_MAX_RESULTS = 20
LIMITED_MAX_RESULTS = 10


class ProviderError(Exception):
    """Base exception for face descriptor provider errors."""


class ModelsNotLoadedError(ProviderError):
    """Raised when detection is requested before the provider is ready."""


class FaceDescriptorProvider(Protocol):
    variants: Tuple[str, ...]
    models: Tuple[str, ...]

    def detect(self, image: np.ndarray, options: DetectorOptions) -> List[Detection]:
        ...


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class ProviderStatus:
    status: str = STATUS_LOADING
    initialized: bool = False
    models_loaded: bool = False
    models: Tuple[str, ...] = ()
    min_confidence: float = DEFAULT_MIN_CONFIDENCE
    max_results: int = DEFAULT_MAX_RESULTS
    timestamp: str = field(default_factory=_utc_now)

    def to_dict(self) -> Dict:
        return {
            "status": self.status,
            "initialized": self.initialized,
            "models_loaded": self.models_loaded,
            "models": list(self.models),
            "min_confidence": self.min_confidence,
            "max_results": self.max_results,
            "timestamp": self.timestamp,
        }


class ProviderHandle:
    """Capability handle wrapping a loaded provider and its readiness status."""

    def __init__(
        self,
        provider: Optional[FaceDescriptorProvider],
        status: ProviderStatus,
        detector_options: Optional[Mapping[str, DetectorOptions]] = None,
    ) -> None:
        self.provider = provider
        self.status = status
        self.detector_options: Dict[str, DetectorOptions] = dict(
            detector_options or {VARIANT_ACCURATE: ACCURATE_DETECTOR, VARIANT_FAST: FAST_DETECTOR}
        )
        # Worker calls still running, including ones abandoned after a timeout
        self._pending: Set["asyncio.Future[List[Detection]]"] = set()

    @classmethod
    def ready_with(
        cls,
        provider: FaceDescriptorProvider,
        detector_options: Optional[Mapping[str, DetectorOptions]] = None,
        limited: bool = False,
    ) -> "ProviderHandle":
        status = ProviderStatus(
            status=STATUS_LIMITED if limited else STATUS_READY,
            initialized=True,
            models_loaded=True,
            models=tuple(getattr(provider, "models", ())),
            max_results=LIMITED_MAX_RESULTS if limited else DEFAULT_MAX_RESULTS,
        )
        return cls(provider, status, detector_options)

    @property
    def ready(self) -> bool:
        return (
            self.provider is not None
            and self.status.models_loaded
            and self.status.status in (STATUS_READY, STATUS_LIMITED)
        )

    def require_ready(self) -> None:
        if not self.ready:
            raise ModelsNotLoadedError(
                f"Face recognition models not loaded (status={self.status.status})"
            )

    def supports(self, variant: str) -> bool:
        if self.provider is None:
            return False
        return variant in tuple(getattr(self.provider, "variants", (VARIANT_ACCURATE, VARIANT_FAST)))

    async def detect(
        self,
        image: np.ndarray,
        variant: str,
        timeout_s: Optional[float] = None,
    ) -> List[Detection]:
        """Run one detector variant without blocking the event loop.

        On timeout the worker thread cannot be interrupted; the call stays in
        :attr:`in_flight` until it returns, see :meth:`drain`.
        """
        self.require_ready()
        options = self.detector_options[variant]
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, self.provider.detect, image, options)
        self._pending.add(future)
        future.add_done_callback(self._forget)
        if timeout_s is None:
            return await future
        return await asyncio.wait_for(asyncio.shield(future), timeout=timeout_s)

    @property
    def in_flight(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait until every detector call started through this handle has returned."""
        if not self._pending:
            return
        LOGGER.debug("Waiting for %d abandoned detector call(s) to finish", len(self._pending))
        await asyncio.wait(set(self._pending))

    def _forget(self, future: "asyncio.Future[List[Detection]]") -> None:
        self._pending.discard(future)
        # Abandoned calls have no awaiter left to see their error
        if not future.cancelled() and future.exception() is not None:
            LOGGER.debug("Detector call finished with error: %s", future.exception())


async def initialize_provider(
    factory: Callable[[], FaceDescriptorProvider],
    fallback_factory: Optional[Callable[[], FaceDescriptorProvider]] = None,
    detector_options: Optional[Mapping[str, DetectorOptions]] = None,
) -> ProviderHandle:
    """Load models once; degrade to the fallback provider, else report failure."""
    LOGGER.info("Loading face recognition models...")
    try:
        provider = await asyncio.to_thread(factory)
    except Exception as exc:
        LOGGER.error("Failed to load face recognition models: %s", exc)
        LOGGER.debug("Model load stack trace", exc_info=True)
    else:
        LOGGER.info("Face models loaded successfully: %s", list(getattr(provider, "models", ())))
        return ProviderHandle.ready_with(provider, detector_options)

    if fallback_factory is not None:
        try:
            provider = await asyncio.to_thread(fallback_factory)
        except Exception as exc:
            LOGGER.error("Failed to load fallback models: %s", exc)
        else:
            LOGGER.warning("Face recognition running in limited mode with %s", list(getattr(provider, "models", ())))
            return ProviderHandle.ready_with(provider, detector_options, limited=True)

    return ProviderHandle(None, ProviderStatus(status=STATUS_FAILED), detector_options)


def _variants_for(method: str) -> Sequence[str]:
    method = normalize_detection_method(method)
    if method == "both":
        return (VARIANT_ACCURATE, VARIANT_FAST)
    if method == "accurate":
        return (VARIANT_ACCURATE,)
    return (VARIANT_FAST,)


async def detect_with_fallback(
    handle: ProviderHandle,
    image: np.ndarray,
    method: str = "both",
    timeout_s: Optional[float] = None,
    label: str = "",
) -> List[Detection]:
    """Prefer the accurate detector and fall back to the fast one on zero faces.

    Detector failures and timeouts are logged and count as zero detections.
    """
    handle.require_ready()
    for variant in _variants_for(method):
        if not handle.supports(variant):
            LOGGER.debug("%sProvider does not support %s detector, skipping", label, variant)
            continue
        try:
            detections = await handle.detect(image, variant, timeout_s=timeout_s)
        except asyncio.TimeoutError:
            LOGGER.warning("%s%s detection timed out after %.1fs", label, variant, timeout_s or 0.0)
            continue
        except Exception as exc:
            LOGGER.warning("%s%s detection failed: %s", label, variant, exc)
            continue
        if detections:
            LOGGER.debug("%sFound %d faces with %s detector", label, len(detections), variant)
            return list(detections)
    return []
