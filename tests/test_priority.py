from datetime import timedelta

from app.models.base import utc_now
from app.models.issue import IssueStatus, Severity
from app.services.priority_scoring import PriorityScorer
from conftest import make_submission, run


def test_base_scores_per_tier():
    scorer = PriorityScorer()
    assert scorer.score(Severity.HIGH, 0, 0) == 50.0
    assert scorer.score(Severity.MEDIUM, 0, 0) == 30.0
    assert scorer.score(Severity.LOW, 0, 0) == 10.0


def test_upvotes_raise_score_up_to_cap():
    scorer = PriorityScorer()
    assert scorer.score(Severity.MEDIUM, 3, 0) == 36.0
    assert scorer.score(Severity.LOW, 15, 0) == 40.0
    assert scorer.score(Severity.LOW, 500, 0) == 40.0


def test_age_boost_is_capped():
    scorer = PriorityScorer()
    assert scorer.score(Severity.MEDIUM, 0, 48) == 34.0
    assert scorer.score(Severity.LOW, 0, 24 * 365) == 20.0


def test_score_is_clamped_to_100():
    assert PriorityScorer().score(Severity.HIGH, 1000, 24 * 1000) == 100.0


def test_monotonic_in_support_and_severity():
    scorer = PriorityScorer()
    for age in (0, 12, 100, 1000):
        for votes in range(0, 40):
            assert scorer.score(Severity.MEDIUM, votes + 1, age) >= scorer.score(Severity.MEDIUM, votes, age)
            assert scorer.score(Severity.HIGH, votes, age) >= scorer.score(Severity.MEDIUM, votes, age)
            assert scorer.score(Severity.MEDIUM, votes, age) >= scorer.score(Severity.LOW, votes, age)


def test_score_issue_uses_age(container):
    async def scenario():
        result = await container.intake.submit(make_submission())
        issue = result.issue
        later = utc_now() + timedelta(days=3)
        return container.scorer.score_issue(issue, now=later)

    assert 35.9 < run(scenario()) <= 36.0


def test_rescore_skips_terminal_issues(container):
    async def scenario():
        issue = (await container.intake.submit(make_submission())).issue
        await container.state_machine.transition(issue.id, IssueStatus.REJECTED, actor_id="staff-1")
        rejected = await container.repositories.issues.get(issue.id)
        return rejected, await container.priority.rescore_issue(rejected)

    rejected, rescored = run(scenario())
    assert rescored is None
    assert rejected.priority_score == 30.0


def test_rescore_sweep_counts_open_issues(container):
    async def scenario():
        await container.intake.submit(make_submission())
        await container.intake.submit(make_submission(category="Garbage", image="uploads/trash.jpg"))
        return await container.priority.rescore_open_issues()

    assert run(scenario()) == 2
