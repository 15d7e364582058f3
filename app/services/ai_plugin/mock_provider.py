"""
Mock Image Classifier - fallback provider when no real classifier is configured.

Rule-based keyword matching on the image reference. Deterministic,
instant, and never fails.
"""

from app.services.ai_plugin.base import ImageClassifier, ImageAnalysis
from typing import Dict
import logging

logger = logging.getLogger(__name__)


class MockImageClassifier(ImageClassifier):
    """
    Mock classifier using the image file name as its only signal.

    This is the fallback provider when:
    - AI is disabled in config
    - No classifier URL is configured
    """

    MODEL_NAME = "mock-rules-v1"
    MODEL_VERSION = "1.0.0"

    KEYWORDS = {
        "pothole": "Pothole",
        "garbage": "Garbage",
        "trash": "Garbage",
        "streetlight": "StreetLight",
        "street-light": "StreetLight",
        "graffiti": "Graffiti",
        "leak": "WaterLeak",
        "sewage": "Sewage",
        "wire": "ElectricalHazard",
    }

    def is_enabled(self) -> bool:
        """Mock provider is always enabled (fallback)."""
        return True

    def get_model_info(self) -> Dict[str, str]:
        return {
            "name": self.MODEL_NAME,
            "version": self.MODEL_VERSION
        }

    def analyze(self, image_ref: str) -> ImageAnalysis:
        name = (image_ref or "").rsplit("/", 1)[-1].lower()
        for keyword, category in self.KEYWORDS.items():
            if keyword in name:
                return ImageAnalysis(
                    is_valid=True,
                    detected_category=category,
                    confidence=0.95,
                    tags={"civic", "infrastructure"},
                    model_name=self.MODEL_NAME,
                )

        # Nothing recognisable: unclassified, never a rejection
        return ImageAnalysis(is_valid=False, model_name=self.MODEL_NAME)
