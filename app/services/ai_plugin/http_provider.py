"""
HTTP Image Classifier - calls an external vision service.

Expected endpoint contract (POST JSON {"image_url": ...}):
    {"isValid": bool, "detectedCategory": str, "confidence": 0..1, "tags": [str]}
"""

from app.services.ai_plugin.base import ImageClassifier, ImageAnalysis
from app.core.settings import settings
from typing import Dict, Optional
import logging

import requests

logger = logging.getLogger(__name__)


class HttpImageClassifier(ImageClassifier):
    """
    Image classifier backed by an HTTP inference service.

    Requires IMAGE_CLASSIFIER_URL. Transport errors propagate to the
    registry, which falls back to the deterministic severity table.
    """

    MODEL_NAME = "http-vision"
    MODEL_VERSION = "1.0"

    def __init__(self, url: Optional[str] = None, api_key: Optional[str] = None, timeout: Optional[float] = None):
        self.url = url if url is not None else settings.IMAGE_CLASSIFIER_URL
        self.api_key = api_key if api_key is not None else settings.IMAGE_CLASSIFIER_API_KEY
        self.timeout = timeout or settings.CLASSIFIER_TIMEOUT_SECONDS
        self.enabled = bool(self.url and self.url.strip())

        if self.enabled:
            logger.info(f"✅ HTTP image classifier initialized: {self.url}")
        else:
            logger.info("⚠️ HTTP image classifier disabled: no IMAGE_CLASSIFIER_URL configured")

    def is_enabled(self) -> bool:
        return self.enabled

    def get_model_info(self) -> Dict[str, str]:
        return {
            "name": self.MODEL_NAME,
            "version": self.MODEL_VERSION
        }

    def analyze(self, image_ref: str) -> ImageAnalysis:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        resp = requests.post(self.url, json={"image_url": image_ref}, headers=headers, timeout=self.timeout)
        resp.raise_for_status()
        return self._parse_response(resp.json())

    def _parse_response(self, data: Dict) -> ImageAnalysis:
        confidence = float(data.get("confidence") or 0.0)
        return ImageAnalysis(
            is_valid=bool(data.get("isValid", False)),
            detected_category=str(data.get("detectedCategory") or ""),
            confidence=min(max(confidence, 0.0), 1.0),
            tags={str(tag) for tag in data.get("tags") or []},
            model_name=self.MODEL_NAME,
        )
