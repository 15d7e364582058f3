"""
Image Classifier Base Interface.

Defines the contract for external AI image classifiers.
All classifier providers must implement this interface.
"""

from abc import ABC, abstractmethod
from typing import Dict, Set
from pydantic import BaseModel, Field
import logging

logger = logging.getLogger(__name__)


class ImageAnalysis(BaseModel):
    """
    Standardized classifier output.

    `is_valid=False` means the image could not be interpreted; the
    report is still accepted and classified from its category alone.
    """
    is_valid: bool
    detected_category: str = ""
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    tags: Set[str] = Field(default_factory=set)
    model_name: str = "unknown"


class ImageClassifier(ABC):
    """
    Abstract base class for image classifiers.

    Providers are synchronous; the registry runs them in a worker thread
    under a bounded timeout so a slow provider cannot stall submission.
    """

    @abstractmethod
    def is_enabled(self) -> bool:
        """
        Check if this provider is configured and ready.
        """
        pass

    @abstractmethod
    def get_model_info(self) -> Dict[str, str]:
        """
        Get model information (name, version).
        """
        pass

    @abstractmethod
    def analyze(self, image_ref: str) -> ImageAnalysis:
        """
        Analyze the image behind `image_ref`.

        May raise on transport errors; the registry converts any failure
        into ClassifierUnavailable.
        """
        pass
