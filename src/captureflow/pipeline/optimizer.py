"""Image optimization stage backed by Pillow."""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from PIL import Image, ImageOps, UnidentifiedImageError

from captureflow.config.models import PipelineConfig
from captureflow.errors import ErrorCode, PipelineError
from captureflow.pipeline.validation import ValidatedImage
from captureflow.schemas.enums import PipelineStage
from captureflow.schemas.result_models import Dimensions, OptimizationMetrics

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class OptimizedImage:
    """Payload the upload stage sends, plus before/after measurements."""

    path: Path
    mime_type: str
    metrics: OptimizationMetrics


class ImageOptimizer(Protocol):
    async def optimize(self, image: ValidatedImage) -> OptimizedImage: ...


def reduction_percentage(original_size: int, optimized_size: int) -> float:
    if original_size <= 0:
        return 0.0
    return round((1 - optimized_size / original_size) * 100, 2)


class PillowImageOptimizer:
    """Orient, downscale and re-encode images as JPEG for extraction."""

    def __init__(
        self,
        *,
        work_dir: Path,
        max_dimension: int = 2048,
        jpeg_quality: int = 85,
        enabled: bool = True,
    ) -> None:
        self.work_dir = work_dir
        self.max_dimension = max_dimension
        self.jpeg_quality = jpeg_quality
        self.enabled = enabled

    @classmethod
    def from_config(cls, config: PipelineConfig) -> PillowImageOptimizer:
        return cls(
            work_dir=config.work_dir,
            max_dimension=config.max_dimension,
            jpeg_quality=config.jpeg_quality,
            enabled=config.optimization_enabled,
        )

    async def optimize(self, image: ValidatedImage) -> OptimizedImage:
        if not self.enabled:
            return OptimizedImage(
                path=image.path,
                mime_type=image.mime_type,
                metrics=OptimizationMetrics(
                    original_size=image.size,
                    optimized_size=image.size,
                    format=image.mime_type.split("/")[-1],
                ),
            )
        return await asyncio.to_thread(self._optimize_sync, image)

    def _optimize_sync(self, image: ValidatedImage) -> OptimizedImage:
        started = time.perf_counter()
        self.work_dir.mkdir(parents=True, exist_ok=True)
        target = self.work_dir / f"{image.path.stem}-{secrets.token_hex(4)}.jpg"
        try:
            with Image.open(image.path) as source:
                original = Dimensions(width=source.width, height=source.height)
                oriented = ImageOps.exif_transpose(source)
                if oriented.mode != "RGB":
                    oriented = oriented.convert("RGB")
                oriented.thumbnail(
                    (self.max_dimension, self.max_dimension),
                    Image.Resampling.LANCZOS,
                )
                optimized = Dimensions(width=oriented.width, height=oriented.height)
                oriented.save(
                    target, format="JPEG", quality=self.jpeg_quality, optimize=True
                )
        except (OSError, UnidentifiedImageError, ValueError) as exc:
            raise PipelineError(
                ErrorCode.OPTIMIZATION_FAILED,
                f"Image optimization failed: {exc}",
                stage=PipelineStage.OPTIMIZATION.value,
            ) from exc

        optimized_size = target.stat().st_size
        metrics = OptimizationMetrics(
            original_size=image.size,
            optimized_size=optimized_size,
            original_dimensions=original,
            optimized_dimensions=optimized,
            reduction_percentage=reduction_percentage(image.size, optimized_size),
            processing_time_ms=round((time.perf_counter() - started) * 1000, 2),
            format="jpeg",
        )
        LOGGER.debug(
            "Optimized %s: %s -> %s bytes",
            image.path.name,
            image.size,
            optimized_size,
        )
        return OptimizedImage(path=target, mime_type="image/jpeg", metrics=metrics)
