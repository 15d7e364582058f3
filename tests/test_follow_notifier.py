from app.models.notification import EventType, NotificationEvent
from app.models.municipal import PagePost, department_key
from app.services.follow_notifier import FollowNotifier
from app.services.notification_transport import LoggingTransport
from conftest import make_page, run


class PartiallyFailingTransport(LoggingTransport):

    def __init__(self, failing_ids):
        super().__init__()
        self.failing_ids = set(failing_ids)

    async def send(self, recipient_id, event):
        if recipient_id in self.failing_ids:
            raise ConnectionError("device unreachable")
        await super().send(recipient_id, event)


def official_update(title="Road closure"):
    return NotificationEvent(event_type=EventType.OFFICIAL_UPDATE, title=title, body="Detour via Station Road")


def test_only_followers_with_notifications_are_notified(container, transport):
    async def scenario():
        page = await container.municipal.create_page(make_page())
        for user_id in ("f1", "f2", "f3"):
            await container.municipal.follow(page.id, user_id)
        await container.municipal.set_notifications(page.id, "f3", False)
        return await container.notifier.notify_followers(page, official_update())

    assert run(scenario()) == 2
    assert sorted(e.recipient_id for e in transport.sent) == ["f1", "f2"]
    assert all(e.data["page_handle"] == "vasai_roads" for e in transport.sent)


def test_delivery_failures_are_skipped(container):
    async def scenario():
        page = await container.municipal.create_page(make_page())
        for user_id in ("f1", "f2", "f3"):
            await container.municipal.follow(page.id, user_id)
        flaky = PartiallyFailingTransport({"f2"})
        notifier = FollowNotifier(container.repositories.municipal, flaky)
        return await notifier.notify_followers(page, official_update()), flaky

    notified, flaky = run(scenario())
    assert notified == 2
    assert sorted(e.recipient_id for e in flaky.sent) == ["f1", "f3"]


def test_follower_lookup_failure_returns_zero(container):
    class BrokenMunicipal:
        async def list_follows(self, page_id, notifications_only=False):
            raise RuntimeError("store offline")

    async def scenario():
        page = await container.municipal.create_page(make_page())
        notifier = FollowNotifier(BrokenMunicipal(), LoggingTransport())
        return await notifier.notify_followers(page, official_update())

    assert run(scenario()) == 0


def test_follow_is_unique_and_counted(container):
    async def scenario():
        page = await container.municipal.create_page(make_page())
        first = await container.municipal.follow(page.id, "f1")
        again = await container.municipal.follow(page.id, "f1")
        after_follow = await container.repositories.municipal.get_page(page.id)
        await container.municipal.unfollow(page.id, "f1")
        after_unfollow = await container.repositories.municipal.get_page(page.id)
        return first, again, after_follow, after_unfollow

    first, again, after_follow, after_unfollow = run(scenario())
    assert first is True
    assert again is False
    assert after_follow.followers_count == 1
    assert after_unfollow.followers_count == 0


def test_post_update_fans_out(container, transport):
    async def scenario():
        page = await container.municipal.create_page(make_page())
        await container.municipal.follow(page.id, "f1")
        return await container.municipal.post_update(page.id, PagePost(title="Water cut", body="Ward 4, 10am-2pm"))

    assert run(scenario()) == 1
    assert transport.sent[0].title == "Vasai Roads Department: Water cut"


def test_department_key_normalizes_case_and_spacing():
    assert department_key("  Roads ") == department_key("ROADS") == "roads"


def test_owning_page_lookup_ignores_case(container):
    async def scenario():
        page = await container.municipal.create_page(make_page(department="Roads"))
        found = await container.repositories.municipal.find_page_for_department(" roads")
        return page, found

    page, found = run(scenario())
    assert found is not None and found.id == page.id


def test_event_types_match_emitted_kinds():
    assert {kind.value for kind in EventType} == {"status", "assignment", "official_update", "upvote", "badge"}
