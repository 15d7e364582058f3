import pytest

from app.core.errors import DuplicateConflict, ValidationError
from app.models.issue import GeoPoint, IssueStatus, Severity
from app.services.ai_plugin.base import ImageAnalysis
from conftest import FailingClassifier, SlowClassifier, StubClassifier, make_submission, run

# ~11m north of the default submission
NEARBY = GeoPoint(longitude=72.75, latitude=19.3001)
# ~33m north
FAR = GeoPoint(longitude=72.75, latitude=19.3003)


@pytest.mark.parametrize("field,value", [
    ("title", None),
    ("title", "   "),
    ("category", None),
    ("image", None),
    ("image", ""),
    ("location", None),
])
def test_missing_fields_are_rejected_without_side_effects(container, field, value):
    async def scenario():
        with pytest.raises(ValidationError) as exc_info:
            await container.intake.submit(make_submission(**{field: value}))
        issues = await container.repositories.issues.list_issues()
        reporter = await container.repositories.users.get("citizen-1")
        return exc_info.value, issues, reporter

    error, issues, reporter = run(scenario())
    assert error.field == field
    assert issues == []
    assert reporter is None


def test_new_issue_is_scored_tagged_and_rewarded(container):
    async def scenario():
        result = await container.intake.submit(make_submission())
        reporter = await container.repositories.users.get("citizen-1")
        return result, reporter

    result, reporter = run(scenario())
    issue = result.issue
    assert result.created is True
    assert result.classifier_fallback is False
    assert issue.status == IssueStatus.SUBMITTED
    assert issue.ai_severity == Severity.MEDIUM
    assert issue.priority_score == 30.0
    assert issue.department_tag == "Roads"
    assert "pothole" in issue.ai_tags
    assert len(issue.geohash) == 7
    assert len(issue.status_timeline) == 1
    assert issue.status_timeline[0].updated_by == "citizen-1"
    assert reporter.points == 10
    assert reporter.reports_count == 1


def test_explicit_department_tag_is_kept(container):
    result = run(container.intake.submit(make_submission(department_tag="Ward 4 Works")))
    assert result.issue.department_tag == "Ward 4 Works"


def test_nearby_duplicate_is_rejected(container):
    async def scenario():
        first = (await container.intake.submit(make_submission())).issue
        with pytest.raises(DuplicateConflict) as exc_info:
            await container.intake.submit(make_submission(reporter_id="citizen-2", location=NEARBY))
        return first, exc_info.value, await container.repositories.issues.list_issues()

    first, error, issues = run(scenario())
    assert error.existing_issue_id == first.id
    assert error.distance_meters < 20
    assert len(issues) == 1


def test_duplicate_can_be_merged(container):
    async def scenario():
        first = (await container.intake.submit(make_submission())).issue
        merged = await container.intake.submit(make_submission(
            reporter_id="citizen-2", location=NEARBY, image="uploads/pothole_002.jpg", merge_duplicates=True,
        ))
        return first, merged

    first, merged = run(scenario())
    assert merged.created is False
    assert merged.merged_into == first.id
    assert "citizen-2" in merged.issue.upvotes
    assert "uploads/pothole_002.jpg" in merged.issue.media_proof
    assert merged.issue.priority_score == 32.0


def test_far_or_different_category_is_not_a_duplicate(container):
    async def scenario():
        await container.intake.submit(make_submission())
        far = await container.intake.submit(make_submission(reporter_id="citizen-2", location=FAR))
        other = await container.intake.submit(make_submission(
            reporter_id="citizen-3", category="Garbage", image="uploads/trash.jpg",
        ))
        return far, other

    far, other = run(scenario())
    assert far.created is True
    assert other.created is True
    assert other.issue.ai_severity == Severity.LOW


def test_closed_issue_does_not_block_new_report(container):
    async def scenario():
        first = (await container.intake.submit(make_submission())).issue
        await container.state_machine.transition(first.id, IssueStatus.REJECTED, "staff-1")
        return await container.intake.submit(make_submission(reporter_id="citizen-2", location=NEARBY))

    assert run(scenario()).created is True


def test_classifier_timeout_falls_back_to_category(container_with):
    slow = SlowClassifier()
    container = container_with(slow)

    result = run(container.intake.submit(make_submission()))
    assert result.created is True
    assert result.classifier_fallback is True
    # the slow classifier would have said WaterLeak (High)
    assert result.issue.ai_severity == Severity.MEDIUM


def test_classifier_error_falls_back_to_category(container_with):
    container = container_with(FailingClassifier())
    result = run(container.intake.submit(make_submission()))
    assert result.classifier_fallback is True
    assert result.issue.ai_severity == Severity.MEDIUM


def test_confident_classifier_sets_severity(container_with):
    stub = StubClassifier(ImageAnalysis(is_valid=True, detected_category="ElectricalHazard", confidence=0.92))
    container = container_with(stub)
    result = run(container.intake.submit(make_submission(category="Other", image="uploads/IMG_1.jpg")))
    assert stub.calls == 1
    assert result.issue.ai_severity == Severity.HIGH
    assert result.issue.priority_score == 50.0


def test_concurrent_duplicates_caught_by_store(container):
    async def no_match(point, category, radius_meters=None):
        return None

    async def scenario():
        # Simulates two submissions that both passed the lookup before either committed
        container.intake.duplicate_index.find_nearest = no_match
        first = (await container.intake.submit(make_submission())).issue
        with pytest.raises(DuplicateConflict) as exc_info:
            await container.intake.submit(make_submission(reporter_id="citizen-2", location=NEARBY))
        merged = await container.intake.submit(make_submission(
            reporter_id="citizen-3", location=NEARBY, merge_duplicates=True,
        ))
        return first, exc_info.value, merged, await container.repositories.issues.list_issues()

    first, error, merged, issues = run(scenario())
    assert error.existing_issue_id == first.id
    assert merged.merged_into == first.id
    assert len(issues) == 1


def test_reward_failure_does_not_block_submission(container):
    async def broken_grant(*args, **kwargs):
        raise RuntimeError("ledger offline")

    container.intake.rewards.grant = broken_grant
    result = run(container.intake.submit(make_submission()))
    assert result.created is True
