"""
Severity Classifier - maps a reported category to a severity tier and tags.

DESIGN PRINCIPLES:
- The category table is the deterministic baseline
- Image analysis may override the tier only when it is valid and confident
- A missing or failed analysis never blocks submission
"""

from app.models.issue import Severity
from app.services.ai_plugin.base import ImageAnalysis
from pydantic import BaseModel, Field
from typing import Dict, Optional, Set
import logging

logger = logging.getLogger(__name__)


class Classification(BaseModel):
    severity: Severity
    tags: Set[str] = Field(default_factory=set)
    source: str = "category"  # "category" or "image"


def _normalize(category: str) -> str:
    return "".join(ch for ch in (category or "").lower() if ch.isalnum())


class SeverityClassifier:
    """
    Deterministic category → severity mapping with optional AI override.
    """

    # Safety hazards default High, cosmetic issues default Low
    CATEGORY_SEVERITY: Dict[str, Severity] = {
        "pothole": Severity.MEDIUM,
        "garbage": Severity.LOW,
        "streetlight": Severity.HIGH,
        "graffiti": Severity.LOW,
        "waterleak": Severity.HIGH,
        "electricalhazard": Severity.HIGH,
        "sewage": Severity.MEDIUM,
        "roaddamage": Severity.MEDIUM,
        "fallentree": Severity.HIGH,
        "noise": Severity.LOW,
    }
    DEFAULT_SEVERITY = Severity.MEDIUM

    # Department a category is routed to when the reporter gives none
    CATEGORY_DEPARTMENT: Dict[str, str] = {
        "pothole": "Roads",
        "roaddamage": "Roads",
        "garbage": "Sanitation",
        "sewage": "Sanitation",
        "streetlight": "Electricity",
        "electricalhazard": "Electricity",
        "waterleak": "Water",
        "fallentree": "Parks",
    }

    def __init__(self, confidence_threshold: float = 0.7):
        self.confidence_threshold = confidence_threshold

    def base_severity(self, category: str) -> Severity:
        return self.CATEGORY_SEVERITY.get(_normalize(category), self.DEFAULT_SEVERITY)

    def department_for(self, category: str) -> str:
        return self.CATEGORY_DEPARTMENT.get(_normalize(category), "General")

    def classify(self, category: str, image_analysis: Optional[ImageAnalysis] = None) -> Classification:
        """
        Classify a report.

        Args:
            category: Reporter-selected category
            image_analysis: Classifier output, or None if unavailable

        Returns:
            Classification with severity tier, tags and the signal used
        """
        tags = {_normalize(category) or "general", "civic-issue"}

        if image_analysis is None or not image_analysis.is_valid:
            return Classification(severity=self.base_severity(category), tags=tags)

        if image_analysis.confidence < self.confidence_threshold:
            logger.info(
                f"Image analysis confidence {image_analysis.confidence:.2f} below "
                f"{self.confidence_threshold}, using category baseline for {category}"
            )
            return Classification(severity=self.base_severity(category), tags=tags)

        tags |= {tag.lower() for tag in image_analysis.tags}
        detected = _normalize(image_analysis.detected_category)
        if detected in self.CATEGORY_SEVERITY:
            tags.add(detected)
            return Classification(severity=self.CATEGORY_SEVERITY[detected], tags=tags, source="image")

        return Classification(severity=self.base_severity(category), tags=tags)
