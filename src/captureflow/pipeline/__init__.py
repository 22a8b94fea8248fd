"""Pipeline engine exports."""

from captureflow.pipeline.engine import CurrentJob, PipelineEngine
from captureflow.pipeline.optimizer import (
    ImageOptimizer,
    OptimizedImage,
    PillowImageOptimizer,
)
from captureflow.pipeline.progress import (
    STAGE_BANDS,
    ProgressCallback,
    ProgressReporter,
    band_progress,
    polled_progress,
)
from captureflow.pipeline.transform import mean_confidence, transform_backend_result
from captureflow.pipeline.validation import ValidatedImage, validate_image_file

__all__ = [
    "CurrentJob",
    "ImageOptimizer",
    "OptimizedImage",
    "PillowImageOptimizer",
    "PipelineEngine",
    "ProgressCallback",
    "ProgressReporter",
    "STAGE_BANDS",
    "ValidatedImage",
    "band_progress",
    "mean_confidence",
    "polled_progress",
    "transform_backend_result",
    "validate_image_file",
]
