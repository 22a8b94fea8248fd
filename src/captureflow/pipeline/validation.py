"""Input image validation stage."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from captureflow.config.models import PipelineConfig
from captureflow.errors import ErrorCode, PipelineError
from captureflow.schemas.enums import PipelineStage

MIME_TYPES_BY_EXTENSION: dict[str, str] = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".heic": "image/heic",
    ".webp": "image/webp",
}


@dataclass(frozen=True)
class ValidatedImage:
    """Image that passed validation."""

    path: Path
    size: int
    mime_type: str


def resolve_image_path(image_ref: str) -> Path:
    """Turn an image handle (plain path or ``file://`` URI) into a path."""
    if image_ref.startswith("file://"):
        return Path(image_ref[len("file://") :])
    return Path(image_ref)


def mime_type_for(path: Path) -> str | None:
    return MIME_TYPES_BY_EXTENSION.get(path.suffix.lower())


def validate_image_file(image_ref: str, config: PipelineConfig) -> ValidatedImage:
    """Check existence, size and format. All failures are non-retryable."""
    stage = PipelineStage.VALIDATION.value
    path = resolve_image_path(image_ref)
    if not path.is_file():
        raise PipelineError(
            ErrorCode.FILE_NOT_FOUND,
            f"Image file not found: {path.name}",
            stage=stage,
        )
    try:
        size = path.stat().st_size
    except OSError as exc:
        raise PipelineError(
            ErrorCode.FILE_SIZE_UNKNOWN,
            f"Unable to read image size: {exc.strerror or exc}",
            stage=stage,
        ) from exc
    if size <= 0:
        raise PipelineError(
            ErrorCode.FILE_SIZE_UNKNOWN,
            "Image file is empty",
            stage=stage,
        )
    if size > config.max_file_size_bytes:
        raise PipelineError(
            ErrorCode.FILE_TOO_LARGE,
            f"Image is {size} bytes; limit is {config.max_file_size_bytes}",
            stage=stage,
            context={"size": size, "max_size": config.max_file_size_bytes},
        )
    mime_type = mime_type_for(path)
    if mime_type is None or mime_type not in config.supported_formats:
        raise PipelineError(
            ErrorCode.UNSUPPORTED_FORMAT,
            f"Unsupported image format: {path.suffix or 'none'}",
            stage=stage,
            context={"supported_formats": list(config.supported_formats)},
        )
    return ValidatedImage(path=path, size=size, mime_type=mime_type)
