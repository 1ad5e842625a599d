"""InsightFace-backed face descriptor provider."""

from __future__ import annotations

import logging
import os
import platform
from typing import List, Optional, Sequence, Tuple

import numpy as np

from selfiematch.config import VARIANT_ACCURATE, VARIANT_FAST, DetectorOptions, ProviderConfig
from selfiematch.types import Detection, FaceBox

LOGGER = logging.getLogger("selfiematch.detectors.face")

LANDMARK_TASK = "landmark_3d_68"
ALLOWED_MODULES = ["detection", LANDMARK_TASK, "recognition"]
# Candidate boxes are kept down to the lowest floor any variant may ask for
DETECTION_FLOOR = 0.05


def _default_providers() -> Tuple[str, ...]:
    """Choose default ONNX providers based on platform."""
    system = platform.system()
    machine = platform.machine().lower()
    if system == "Darwin" and machine in {"arm64", "aarch64"}:
        return ("CoreMLExecutionProvider", "CPUExecutionProvider")
    return ("CPUExecutionProvider",)


class InsightFaceProvider:
    """RetinaFace detection, 68-point landmarks and ArcFace embeddings via InsightFace.

    Both detector variants share one model pack; they differ in input size and
    score floor. Images are expected in BGR channel order.
    """

    variants = (VARIANT_ACCURATE, VARIANT_FAST)

    def __init__(
        self,
        model_name: str = "buffalo_l",
        providers: Optional[Sequence[str]] = None,
        model_root: Optional[str] = None,
        det_size: Tuple[int, int] = (640, 640),
    ) -> None:
        os.environ.setdefault("OMP_NUM_THREADS", "2")
        os.environ.setdefault("MKL_NUM_THREADS", "2")
        os.environ.setdefault("ORT_INTRA_OP_NUM_THREADS", "2")
        try:
            from insightface.app import FaceAnalysis
        except ImportError as exc:  # pragma: no cover - import guard
            raise RuntimeError(
                "insightface is required for InsightFaceProvider. "
                "Install it via `pip install insightface`."
            ) from exc

        provider_list: Tuple[str, ...]
        if providers is None:
            provider_list = _default_providers()
        else:
            provider_list = tuple(providers)
        self.providers = provider_list
        self.model_name = model_name

        kwargs = {"name": model_name, "allowed_modules": ALLOWED_MODULES, "providers": list(provider_list)}
        if model_root:
            kwargs["root"] = os.path.expanduser(model_root)
        self.app = FaceAnalysis(**kwargs)
        self.app.prepare(ctx_id=0, det_thresh=DETECTION_FLOOR, det_size=det_size)
        if "recognition" not in self.app.models:
            raise RuntimeError(f"Model pack {model_name} has no recognition model")
        self.models = tuple(sorted(self.app.models.keys()))
        LOGGER.info(
            "Loaded InsightFace pack %s det_size=%s providers=%s models=%s",
            model_name,
            det_size,
            provider_list,
            self.models,
        )

    def detect(self, image: np.ndarray, options: DetectorOptions) -> List[Detection]:
        from insightface.app.common import Face

        size = (int(options.input_size), int(options.input_size))
        bboxes, kpss = self.app.det_model.detect(image, input_size=size, max_num=0, metric="default")
        detections: List[Detection] = []
        if bboxes is None or bboxes.shape[0] == 0:
            return detections
        for idx in range(bboxes.shape[0]):
            score = float(bboxes[idx, 4])
            if score < options.min_confidence:
                continue
            kps = kpss[idx] if kpss is not None else None
            face = Face(bbox=bboxes[idx, 0:4], kps=kps, det_score=score)
            for taskname, model in self.app.models.items():
                if taskname == "detection":
                    continue
                model.get(image, face)
            embedding = face.normed_embedding
            if embedding is None:
                LOGGER.debug("Skipping face %d without embedding", idx)
                continue
            landmarks = face.get(LANDMARK_TASK)
            if landmarks is not None:
                landmarks = np.asarray(landmarks, dtype=np.float32)[:, :2]
            x1, y1, x2, y2 = (float(v) for v in face.bbox)
            detections.append(
                Detection(
                    box=FaceBox.from_xyxy(x1, y1, x2, y2),
                    score=score,
                    embedding=np.asarray(embedding, dtype=np.float32).reshape(-1),
                    landmarks=landmarks,
                )
            )
        # Most confident face first; the selfie validator uses the first detection
        detections.sort(key=lambda d: d.score, reverse=True)
        return detections


def build_provider(config: ProviderConfig) -> InsightFaceProvider:
    return InsightFaceProvider(
        model_name=config.model_name,
        providers=config.onnx_providers,
        model_root=config.model_root,
    )


def build_fallback_provider(config: ProviderConfig) -> InsightFaceProvider:
    if not config.fallback_model_name:
        raise RuntimeError("No fallback model configured")
    return InsightFaceProvider(
        model_name=config.fallback_model_name,
        providers=config.onnx_providers,
        model_root=config.model_root,
        det_size=(320, 320),
    )
