"""
Service container - the single place where components are wired together.

Routes receive the container through FastAPI's dependency injection;
no service looks up a global database client or registry on its own.
"""

from dataclasses import dataclass
from typing import Optional
import logging

from fastapi import Request

from app.config.repositories import build_repositories
from app.core.settings import Settings
from app.repositories.base import Repositories
from app.services.ai_plugin.registry import ImageClassifierRegistry
from app.services.comment_service import CommentService
from app.services.duplicate_detection import GeoDuplicateIndex
from app.services.follow_notifier import FollowNotifier
from app.services.issue_intake import IssueIntakeOrchestrator
from app.services.municipal_service import MunicipalService
from app.services.notification_inbox import NotificationInbox
from app.services.notification_transport import (
    FirebaseMessagingTransport,
    LoggingTransport,
    NotificationTransport,
)
from app.services.priority_scoring import PriorityScorer, PriorityService
from app.services.reward_engine import RewardEngine
from app.services.severity_classifier import SeverityClassifier
from app.services.status_workflow import IssueStateMachine
from app.services.user_service import UserService
from app.services.vote_service import VoteService

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    config: Settings
    repositories: Repositories
    transport: NotificationTransport
    notifier: FollowNotifier
    rewards: RewardEngine
    scorer: PriorityScorer
    priority: PriorityService
    duplicate_index: GeoDuplicateIndex
    classifiers: ImageClassifierRegistry
    state_machine: IssueStateMachine
    intake: IssueIntakeOrchestrator
    votes: VoteService
    municipal: MunicipalService
    comments: CommentService
    users: UserService
    inbox: NotificationInbox


def build_transport(config: Settings) -> NotificationTransport:
    if config.PUSH_NOTIFICATIONS_ENABLED:
        logger.info("Push notifications enabled (Firebase Cloud Messaging)")
        return FirebaseMessagingTransport()
    return LoggingTransport()


def build_container(
    config: Settings,
    repositories: Optional[Repositories] = None,
    transport: Optional[NotificationTransport] = None,
    classifiers: Optional[ImageClassifierRegistry] = None,
) -> ServiceContainer:
    """
    Wire every service against one set of repositories.

    Any collaborator can be supplied explicitly (tests pass an in-memory
    store, a recording transport or a stub classifier).
    """
    repositories = repositories or build_repositories(config)
    transport = transport or build_transport(config)
    classifiers = classifiers or ImageClassifierRegistry(config)

    notifier = FollowNotifier(repositories.municipal, transport, inbox=repositories.notifications)
    rewards = RewardEngine(repositories.users, notifier)
    scorer = PriorityScorer()
    priority = PriorityService(repositories.issues, scorer)
    duplicate_index = GeoDuplicateIndex(
        repositories.issues,
        radius_meters=config.DUPLICATE_RADIUS_METERS,
        precision=config.GEOHASH_PRECISION,
    )
    state_machine = IssueStateMachine(repositories.issues, repositories.municipal, rewards, notifier)
    intake = IssueIntakeOrchestrator(
        issues=repositories.issues,
        duplicate_index=duplicate_index,
        classifiers=classifiers,
        severity=SeverityClassifier(confidence_threshold=config.AI_CONFIDENCE_THRESHOLD),
        scorer=scorer,
        priority=priority,
        rewards=rewards,
    )

    logger.info(f"✅ Service container ready ({repositories.backend} store)")
    return ServiceContainer(
        config=config,
        repositories=repositories,
        transport=transport,
        notifier=notifier,
        rewards=rewards,
        scorer=scorer,
        priority=priority,
        duplicate_index=duplicate_index,
        classifiers=classifiers,
        state_machine=state_machine,
        intake=intake,
        votes=VoteService(repositories.issues, priority, rewards, notifier),
        municipal=MunicipalService(repositories.municipal, notifier),
        comments=CommentService(repositories.comments, repositories.issues),
        users=UserService(repositories.users),
        inbox=NotificationInbox(repositories.notifications),
    )


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container
