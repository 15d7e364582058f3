"""Shared fixtures: an in-memory service container with a recording transport.

The project root is added to sys.path so `import app` works when pytest
is invoked without an editable install.
"""

import asyncio
import sys
import time
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.core.settings import Settings  # noqa: E402
from app.dependencies import build_container  # noqa: E402
from app.models.issue import GeoPoint, IssueCreate  # noqa: E402
from app.models.municipal import MunicipalPageCreate, PageType, Region  # noqa: E402
from app.repositories.memory import create_memory_repositories  # noqa: E402
from app.services.ai_plugin.base import ImageAnalysis, ImageClassifier  # noqa: E402
from app.services.ai_plugin.registry import ImageClassifierRegistry  # noqa: E402
from app.services.notification_transport import LoggingTransport  # noqa: E402


def run(coro):
    """Drive one async scenario to completion on a fresh event loop."""
    return asyncio.run(coro)


def make_submission(**overrides) -> IssueCreate:
    data = {
        "reporter_id": "citizen-1",
        "title": "Deep pothole near bus stop",
        "description": "Two wheelers keep swerving around it",
        "category": "Pothole",
        "image": "uploads/pothole_001.jpg",
        "location": GeoPoint(longitude=72.75, latitude=19.30),
    }
    data.update(overrides)
    return IssueCreate(**data)


def make_page(**overrides) -> MunicipalPageCreate:
    data = {
        "name": "Vasai Roads Department",
        "handle": "vasai_roads",
        "department": "Roads",
        "region": Region(city="Vasai", ward="W-4"),
        "page_type": PageType.DEPARTMENT,
        "created_by_admin_id": "admin-1",
    }
    data.update(overrides)
    return MunicipalPageCreate(**data)


class StubClassifier(ImageClassifier):
    """Returns a fixed analysis."""

    def __init__(self, analysis: ImageAnalysis):
        self.analysis = analysis
        self.calls = 0

    def is_enabled(self) -> bool:
        return True

    def get_model_info(self):
        return {"name": "stub", "version": "test"}

    def analyze(self, image_ref: str) -> ImageAnalysis:
        self.calls += 1
        return self.analysis


class SlowClassifier(StubClassifier):
    """Blocks longer than any sane timeout."""

    def __init__(self, delay: float = 1.0):
        super().__init__(ImageAnalysis(is_valid=True, detected_category="WaterLeak", confidence=0.99))
        self.delay = delay

    def analyze(self, image_ref: str) -> ImageAnalysis:
        time.sleep(self.delay)
        return super().analyze(image_ref)


class FailingClassifier(StubClassifier):

    def __init__(self):
        super().__init__(ImageAnalysis(is_valid=False))

    def analyze(self, image_ref: str) -> ImageAnalysis:
        raise ConnectionError("classifier endpoint refused connection")


@pytest.fixture
def config():
    return Settings(
        USE_MOCK_DB=True,
        AI_ENABLED=False,
        PUSH_NOTIFICATIONS_ENABLED=False,
        RESCORE_INTERVAL_MINUTES=0,
        CLASSIFIER_TIMEOUT_SECONDS=0.25,
    )


@pytest.fixture
def transport():
    return LoggingTransport()


@pytest.fixture
def container(config, transport):
    return build_container(config, repositories=create_memory_repositories(), transport=transport)


@pytest.fixture
def container_with(config, transport):
    """Factory for a container using specific classifier providers."""

    def factory(*providers):
        registry = ImageClassifierRegistry(config, providers=list(providers))
        return build_container(
            config,
            repositories=create_memory_repositories(),
            transport=transport,
            classifiers=registry,
        )

    return factory
