import asyncio

from cita_monitor.dispatcher import NotificationDispatcher, format_notification
from cita_monitor.errors import DeliveryError
from cita_monitor.models import NotifyDecision, StatusSnapshot

from conftest import FakeMessenger

SNAPSHOT = StatusSnapshot(title="Pasaportes", last_known_date="2024-01-01", current_date="2024-02-01")


def test_suppress_sends_nothing(messenger):
    dispatcher = NotificationDispatcher(messenger)

    report = asyncio.run(dispatcher.dispatch(NotifyDecision.suppress("placeholder"), [111, 222]))

    assert messenger.sent == []
    assert report.attempted == 0


def test_notify_reaches_every_subscriber(messenger):
    dispatcher = NotificationDispatcher(messenger)

    report = asyncio.run(dispatcher.dispatch(NotifyDecision.notify(SNAPSHOT), {111, 222}))

    assert sorted(messenger.recipients()) == [111, 222]
    for chat_id in (111, 222):
        text = messenger.texts_for(chat_id)[0]
        assert "2024-01-01" in text
        assert "2024-02-01" in text
    assert report.attempted == 2
    assert report.succeeded == 2
    assert report.failed == 0


def test_one_failure_does_not_stop_the_batch():
    messenger = FakeMessenger(failures={3: RuntimeError("boom")})
    dispatcher = NotificationDispatcher(messenger)

    report = asyncio.run(dispatcher.dispatch(NotifyDecision.notify(SNAPSHOT), [1, 2, 3, 4, 5]))

    assert sorted(messenger.recipients()) == [1, 2, 4, 5]
    assert report.attempted == 5
    assert report.succeeded == 4
    assert report.failed == 1
    assert report.removal_candidates == frozenset()


def test_permanent_failure_becomes_removal_candidate():
    messenger = FakeMessenger(failures={
        2: DeliveryError(2, "Forbidden: bot was blocked by the user", permanent=True),
        3: DeliveryError(3, "Timed out"),
    })
    dispatcher = NotificationDispatcher(messenger)

    report = asyncio.run(dispatcher.dispatch(NotifyDecision.notify(SNAPSHOT), [1, 2, 3]))

    assert report.failed == 2
    assert report.removal_candidates == frozenset({2})


def test_slow_recipient_times_out_without_blocking_others():
    class SlowMessenger(FakeMessenger):
        async def send_message(self, chat_id, text, menu=None):
            if chat_id == 1:
                await asyncio.sleep(5)
            await super().send_message(chat_id, text, menu)

    messenger = SlowMessenger()
    dispatcher = NotificationDispatcher(messenger, delivery_timeout=0.05)

    report = asyncio.run(dispatcher.dispatch(NotifyDecision.notify(SNAPSHOT), [1, 2]))

    assert messenger.recipients() == [2]
    assert report.succeeded == 1
    assert report.failed == 1
    assert report.removal_candidates == frozenset()


def test_batches_cover_all_recipients(messenger):
    dispatcher = NotificationDispatcher(messenger, batch_size=2, batch_interval=0)

    report = asyncio.run(dispatcher.broadcast("hola", range(1, 6)))

    assert sorted(messenger.recipients()) == [1, 2, 3, 4, 5]
    assert report.attempted == 5


def test_format_escapes_html_and_links_page():
    decision = NotifyDecision.notify(
        StatusSnapshot(title="Pasaportes <renovación>", last_known_date="", current_date="01/02/2024")
    )

    text = format_notification(decision, "https://example.test/?a=1&b=2")

    assert "&lt;renovación&gt;" in text
    assert "01/02/2024" in text
    assert "Última apertura: -" in text
    assert "a=1&amp;b=2" in text
