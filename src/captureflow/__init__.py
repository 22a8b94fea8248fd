"""CaptureFlow package entrypoints."""

from captureflow.constants import PACKAGE_VERSION
from captureflow.session import CaptureSession, build_capture_session

__all__ = ["CaptureSession", "build_capture_session", "__version__"]
__version__ = PACKAGE_VERSION
