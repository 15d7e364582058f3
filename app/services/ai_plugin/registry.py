"""
Image Classifier Registry.

Manages provider selection and the bounded, best-effort call used at intake.
"""

from app.core.errors import ClassifierUnavailable
from app.core.settings import Settings
from app.services.ai_plugin.base import ImageClassifier, ImageAnalysis
from app.services.ai_plugin.http_provider import HttpImageClassifier
from app.services.ai_plugin.mock_provider import MockImageClassifier
from typing import List
import asyncio
import logging

logger = logging.getLogger(__name__)


class ImageClassifierRegistry:
    """
    Registry for image classifiers.

    Selects the first enabled provider in priority order; the mock
    provider is always registered last so a provider is always available.
    """

    def __init__(self, config: Settings, providers: List[ImageClassifier] = None):
        self.timeout_seconds = config.CLASSIFIER_TIMEOUT_SECONDS
        if providers is not None:
            self.providers = list(providers)
            return

        self.providers = []
        if not config.AI_ENABLED:
            logger.info("⚠️ AI is disabled globally (AI_ENABLED=false), using mock classifier only")
        else:
            http_provider = HttpImageClassifier(
                url=config.IMAGE_CLASSIFIER_URL,
                api_key=config.IMAGE_CLASSIFIER_API_KEY,
                timeout=config.CLASSIFIER_TIMEOUT_SECONDS,
            )
            if http_provider.is_enabled():
                self.providers.append(http_provider)
        self.providers.append(MockImageClassifier())

    def get_provider(self) -> ImageClassifier:
        for provider in self.providers:
            if provider.is_enabled():
                return provider
        raise ClassifierUnavailable("No image classifier available")

    async def analyze(self, image_ref: str) -> ImageAnalysis:
        """
        Run the active provider in a worker thread with a bounded timeout.

        Raises:
            ClassifierUnavailable: on timeout or any provider error
        """
        provider = self.get_provider()
        model_name = provider.get_model_info()["name"]
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(provider.analyze, image_ref),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise ClassifierUnavailable(f"{model_name} timed out after {self.timeout_seconds}s") from e
        except Exception as e:
            raise ClassifierUnavailable(f"{model_name} failed: {e}") from e
