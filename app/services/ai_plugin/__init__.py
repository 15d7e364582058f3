"""
Image classifier plug-in architecture.

Optional AI enhancement that can be enabled/disabled.
Fails gracefully and never blocks issue intake.
"""

from app.services.ai_plugin.base import ImageClassifier, ImageAnalysis
from app.services.ai_plugin.http_provider import HttpImageClassifier
from app.services.ai_plugin.mock_provider import MockImageClassifier
from app.services.ai_plugin.registry import ImageClassifierRegistry

__all__ = [
    "ImageClassifier",
    "ImageAnalysis",
    "HttpImageClassifier",
    "MockImageClassifier",
    "ImageClassifierRegistry",
]
