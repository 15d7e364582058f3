import asyncio

import pytest

from app.core.errors import InvalidTransition, StorageConflict, TransientStorageError, ValidationError
from app.dependencies import build_container
from app.models.issue import GeoPoint, Issue, IssueStatus
from app.models.notification import EventType
from app.models.user import RewardReason
from app.repositories.memory import create_memory_repositories
from app.services.notification_transport import LoggingTransport
from app.services.status_workflow import IssueStateMachine
from conftest import make_page, make_submission, run

LEGAL = {
    (IssueStatus.SUBMITTED, IssueStatus.ACKNOWLEDGED),
    (IssueStatus.SUBMITTED, IssueStatus.REJECTED),
    (IssueStatus.ACKNOWLEDGED, IssueStatus.IN_PROGRESS),
    (IssueStatus.ACKNOWLEDGED, IssueStatus.REJECTED),
    (IssueStatus.IN_PROGRESS, IssueStatus.RESOLVED),
    (IssueStatus.IN_PROGRESS, IssueStatus.REJECTED),
}


def make_issue(status: IssueStatus) -> Issue:
    return Issue(
        id="issue-1",
        reporter_id="citizen-1",
        title="Broken streetlight",
        category="StreetLight",
        image="uploads/streetlight.jpg",
        location=GeoPoint(longitude=72.75, latitude=19.30),
        geohash="te7ud2e",
        status=status,
        status_timeline=IssueStateMachine.initial_timeline("citizen-1"),
    )


@pytest.mark.parametrize("from_status", list(IssueStatus))
@pytest.mark.parametrize("to_status", list(IssueStatus))
def test_transition_table(from_status, to_status):
    issue = make_issue(from_status)
    if (from_status, to_status) in LEGAL:
        updated = IssueStateMachine.apply(issue, to_status, "staff-1", resolution_proof="fixed.jpg")
        assert updated.status == to_status
        assert len(updated.status_timeline) == len(issue.status_timeline) + 1
        assert updated.status_timeline[-1].status == to_status
        assert updated.status_timeline[-1].updated_by == "staff-1"
    else:
        with pytest.raises(InvalidTransition) as exc_info:
            IssueStateMachine.apply(issue, to_status, "staff-1", resolution_proof="fixed.jpg")
        assert exc_info.value.current_status == from_status.value
        assert issue.status == from_status
        assert len(issue.status_timeline) == 1


def test_apply_does_not_modify_input():
    issue = make_issue(IssueStatus.SUBMITTED)
    IssueStateMachine.apply(issue, IssueStatus.ACKNOWLEDGED, "staff-1")
    assert issue.status == IssueStatus.SUBMITTED
    assert len(issue.status_timeline) == 1


def test_resolving_requires_proof():
    with pytest.raises(ValidationError) as exc_info:
        IssueStateMachine.apply(make_issue(IssueStatus.IN_PROGRESS), IssueStatus.RESOLVED, "staff-1")
    assert exc_info.value.field == "resolution_proof"


def test_resolution_records_resolver():
    updated = IssueStateMachine.apply(
        make_issue(IssueStatus.IN_PROGRESS), IssueStatus.RESOLVED, "staff-9", resolution_proof="after.jpg"
    )
    assert updated.resolved_by == "staff-9"
    assert updated.resolution_proof == "after.jpg"


def test_terminal_states_have_no_exits():
    assert IssueStateMachine.allowed_transitions(IssueStatus.RESOLVED) == []
    assert IssueStateMachine.allowed_transitions(IssueStatus.REJECTED) == []


def test_invalid_transition_reports_allowed_statuses(container):
    async def scenario():
        issue = (await container.intake.submit(make_submission())).issue
        await container.state_machine.transition(issue.id, IssueStatus.RESOLVED, "staff-1", resolution_proof="x.jpg")

    with pytest.raises(InvalidTransition) as exc_info:
        run(scenario())
    assert exc_info.value.allowed == ["Acknowledged", "Rejected"]


def test_concurrent_resolve_only_one_wins(container):
    async def scenario():
        issue = (await container.intake.submit(make_submission())).issue
        machine = container.state_machine
        await machine.transition(issue.id, IssueStatus.ACKNOWLEDGED, "staff-1")
        await machine.transition(issue.id, IssueStatus.IN_PROGRESS, "staff-1")
        results = await asyncio.gather(
            machine.transition(issue.id, IssueStatus.RESOLVED, "staff-1", resolution_proof="a.jpg"),
            machine.transition(issue.id, IssueStatus.RESOLVED, "staff-2", resolution_proof="b.jpg"),
            return_exceptions=True,
        )
        stored = await container.repositories.issues.get(issue.id)
        reporter = await container.repositories.users.get("citizen-1")
        return results, stored, reporter

    results, stored, reporter = run(scenario())
    assert sum(isinstance(r, Issue) for r in results) == 1
    assert sum(isinstance(r, InvalidTransition) for r in results) == 1
    assert stored.status == IssueStatus.RESOLVED
    assert [entry.status for entry in stored.status_timeline].count(IssueStatus.RESOLVED) == 1
    assert reporter.reports_resolved == 1
    assert reporter.points == 10 + 50


class FlakyIssueRepository:
    """Delegates to a real repository but fails the first `failures` CAS calls."""

    def __init__(self, inner, failures):
        self.inner = inner
        self.failures = failures

    def __getattr__(self, name):
        return getattr(self.inner, name)

    async def compare_and_swap(self, issue, expected_version):
        if self.failures > 0:
            self.failures -= 1
            raise StorageConflict("simulated concurrent write")
        return await self.inner.compare_and_swap(issue, expected_version)


def test_storage_conflict_is_retried_once(container):
    async def scenario():
        issue = (await container.intake.submit(make_submission())).issue
        machine = container.state_machine
        machine.issues = FlakyIssueRepository(container.repositories.issues, failures=1)
        return await machine.transition(issue.id, IssueStatus.ACKNOWLEDGED, "staff-1")

    updated = run(scenario())
    assert updated.status == IssueStatus.ACKNOWLEDGED
    assert len(updated.status_timeline) == 2


def test_persistent_conflict_surfaces_as_transient_error(container):
    async def scenario():
        issue = (await container.intake.submit(make_submission())).issue
        machine = container.state_machine
        machine.issues = FlakyIssueRepository(container.repositories.issues, failures=5)
        await machine.transition(issue.id, IssueStatus.ACKNOWLEDGED, "staff-1")

    with pytest.raises(TransientStorageError):
        run(scenario())


def test_stale_version_is_rejected_by_store(container):
    async def scenario():
        repo = container.repositories.issues
        issue = (await container.intake.submit(make_submission())).issue
        updated = IssueStateMachine.apply(issue, IssueStatus.ACKNOWLEDGED, "staff-1")
        await repo.compare_and_swap(updated, expected_version=issue.version)
        await repo.compare_and_swap(updated, expected_version=issue.version)

    with pytest.raises(StorageConflict):
        run(scenario())


class ReadThenYieldIssueRepository:
    """Returns the stored copy, then lets other coroutines run before the caller continues."""

    def __init__(self, inner):
        self.inner = inner

    def __getattr__(self, name):
        return getattr(self.inner, name)

    async def get(self, issue_id):
        issue = await self.inner.get(issue_id)
        await asyncio.sleep(0)
        return issue


def test_rescore_during_transition_is_kept(container):
    async def scenario():
        issue = (await container.intake.submit(make_submission())).issue
        repo = container.repositories.issues
        machine = container.state_machine
        machine.issues = ReadThenYieldIssueRepository(repo)
        await asyncio.gather(
            machine.transition(issue.id, IssueStatus.ACKNOWLEDGED, "staff-1"),
            repo.set_priority(issue.id, 99.0),
        )
        return await repo.get(issue.id)

    stored = run(scenario())
    assert stored.status == IssueStatus.ACKNOWLEDGED
    assert stored.priority_score == 99.0
    assert len(stored.status_timeline) == 2


def test_set_priority_bumps_version(container):
    async def scenario():
        issue = (await container.intake.submit(make_submission())).issue
        rescored = await container.repositories.issues.set_priority(issue.id, 55.0)
        return issue, rescored

    issue, rescored = run(scenario())
    assert rescored.version == issue.version + 1


def test_rejection_notifies_followers_without_reward(container, transport):
    async def scenario():
        page = await container.municipal.create_page(make_page())
        await container.municipal.follow(page.id, "follower-1")
        issue = (await container.intake.submit(make_submission())).issue
        rejected = await container.state_machine.transition(
            issue.id, IssueStatus.REJECTED, "staff-1", comment="Private property",
        )
        reporter = await container.repositories.users.get("citizen-1")
        resolved_reward = await container.repositories.users.find_reward(
            "citizen-1", RewardReason.REPORT_RESOLVED, issue.id,
        )
        return rejected, reporter, resolved_reward

    rejected, reporter, resolved_reward = run(scenario())
    assert rejected.status == IssueStatus.REJECTED
    assert rejected.resolved_by is None
    assert reporter.points == 10
    assert reporter.reports_resolved == 0
    assert resolved_reward is None

    follower_events = [e for e in transport.sent if e.recipient_id == "follower-1"]
    assert len(follower_events) == 1
    assert follower_events[0].event_type == EventType.STATUS
    assert follower_events[0].data["status"] == "Rejected"
    assert follower_events[0].data["page_handle"] == "vasai_roads"


class UnreachableTransport(LoggingTransport):

    async def send(self, recipient_id, event):
        raise ConnectionError("push gateway unreachable")


def test_failing_transport_does_not_block_transition(config):
    container = build_container(config, repositories=create_memory_repositories(), transport=UnreachableTransport())

    async def scenario():
        page = await container.municipal.create_page(make_page())
        await container.municipal.follow(page.id, "follower-1")
        issue = (await container.intake.submit(make_submission())).issue
        machine = container.state_machine
        await machine.transition(issue.id, IssueStatus.ACKNOWLEDGED, "staff-1")
        await machine.transition(issue.id, IssueStatus.IN_PROGRESS, "staff-1")
        returned = await machine.transition(issue.id, IssueStatus.RESOLVED, "staff-2", resolution_proof="after.jpg")
        stored = await container.repositories.issues.get(issue.id)
        reporter = await container.repositories.users.get("citizen-1")
        return returned, stored, reporter

    returned, stored, reporter = run(scenario())
    assert returned.status == IssueStatus.RESOLVED
    assert stored.status == IssueStatus.RESOLVED
    assert len(stored.status_timeline) == 4
    assert reporter.reports_resolved == 1


def test_assignment_acknowledges_and_notifies_worker(container, transport):
    async def scenario():
        issue = (await container.intake.submit(make_submission())).issue
        assigned = await container.state_machine.assign(
            issue.id, "admin-1", department_tag="Roads", assigned_to="worker-7",
        )
        queue = await container.repositories.issues.list_assigned("worker-7")
        return assigned, queue

    assigned, queue = run(scenario())
    assert assigned.status == IssueStatus.ACKNOWLEDGED
    assert assigned.assigned_to == "worker-7"
    assert assigned.status_timeline[-1].comment == "Assigned to Roads"
    assert assigned.status_timeline[-1].updated_by == "admin-1"
    assert [i.id for i in queue] == [assigned.id]

    worker_events = [e for e in transport.sent if e.recipient_id == "worker-7"]
    assert [e.event_type for e in worker_events] == [EventType.ASSIGNMENT]


def test_reassignment_keeps_status_and_timeline(container):
    async def scenario():
        issue = (await container.intake.submit(make_submission())).issue
        machine = container.state_machine
        await machine.assign(issue.id, "admin-1", assigned_to="worker-7")
        await machine.transition(issue.id, IssueStatus.IN_PROGRESS, "worker-7")
        return await machine.assign(issue.id, "admin-1", assigned_to="worker-8")

    reassigned = run(scenario())
    assert reassigned.status == IssueStatus.IN_PROGRESS
    assert reassigned.assigned_to == "worker-8"
    assert len(reassigned.status_timeline) == 3


def test_closed_issue_cannot_be_assigned(container):
    async def scenario():
        issue = (await container.intake.submit(make_submission())).issue
        machine = container.state_machine
        await machine.transition(issue.id, IssueStatus.REJECTED, "staff-1")
        await machine.assign(issue.id, "admin-1", assigned_to="worker-7")

    with pytest.raises(ValidationError) as exc_info:
        run(scenario())
    assert exc_info.value.field == "status"


def test_empty_assignment_is_rejected(container):
    async def scenario():
        issue = (await container.intake.submit(make_submission())).issue
        await container.state_machine.assign(issue.id, "admin-1")

    with pytest.raises(ValidationError) as exc_info:
        run(scenario())
    assert exc_info.value.field == "assignment"
