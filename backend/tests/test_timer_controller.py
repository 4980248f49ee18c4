"""Tests for the parking countdown controller."""
import threading
from datetime import timedelta

import pytest

from parkspot.client.exceptions import InvalidTimerDuration, NotAuthenticatedError
from parkspot.client.session import AuthSession
from parkspot.client.ticker import ThreadTicker
from parkspot.client.timer_controller import TimerController, TimerState
from parkspot.schemas import TimerDataCreate, UserResponse


@pytest.fixture
def alice(client_app):
    client_app.register("alice", "pw123")
    return client_app


class TestStart:
    """Test suite for TimerController.start."""

    def test_zero_duration_is_rejected(self, alice, notifier):
        """Nothing is scheduled or persisted for a zero duration."""
        with pytest.raises(InvalidTimerDuration):
            alice.start_timer(0, 0)

        assert alice.timer_state == TimerState.IDLE
        assert notifier.scheduled() == []
        assert alice.api.get_timer_data() is None

    def test_non_numeric_input_counts_as_zero(self, alice):
        with pytest.raises(InvalidTimerDuration):
            alice.start_timer("abc", "")

    def test_negative_duration_is_rejected(self, alice):
        with pytest.raises(InvalidTimerDuration):
            alice.start_timer(-1, 30)

    def test_requires_login(self, client_app, notifier):
        with pytest.raises(NotAuthenticatedError):
            client_app.start_timer(0, 5)
        assert notifier.scheduled() == []

    def test_start_persists_and_schedules(self, alice, notifier, ticker, clock):
        assert alice.start_timer("0", "5") is True

        timer = alice.timer
        assert timer.state == TimerState.ACTIVE
        assert timer.end_time == clock() + timedelta(minutes=5)
        assert timer.remaining_ms == 300_000
        assert timer.display == "00:05:00"
        assert ticker.running

        scheduled = notifier.scheduled()
        assert len(scheduled) == 1
        assert scheduled[0].data == {"user_id": alice.session.user_id}
        assert scheduled[0].fire_at == clock() + timedelta(minutes=5)
        assert "Timer Started" in notifier.alert_titles

        persisted = alice.api.get_timer_data()
        assert persisted.timer_active is True
        assert persisted.timer_end == timer.end_time
        assert persisted.timer_minutes == 5
        assert persisted.notification_id == timer.notification_id

    def test_restart_replaces_previous_countdown(self, alice, notifier, ticker):
        alice.start_timer(0, 5)
        alice.start_timer(1, 0)

        assert len(notifier.scheduled()) == 1
        assert ticker.starts == 2
        assert alice.timer.remaining_ms == 3_600_000
        assert alice.api.get_timer_data().timer_hours == 1

    def test_duplicate_start_is_ignored(self, alice, notifier):
        alice.timer.starting = True
        assert alice.start_timer(0, 5) is False
        assert notifier.scheduled() == []
        assert alice.timer_state == TimerState.IDLE

    def test_rejected_token_during_start_resets_state(self, alice, store, notifier):
        store.set("token", "not-a-valid-token")

        assert alice.start_timer(0, 5) is False
        assert alice.timer_state == TimerState.IDLE
        assert alice.session.is_authenticated is False
        assert notifier.scheduled() == []


class TestTick:
    """Test suite for ticking and expiry."""

    def test_tick_recomputes_remaining_from_end(self, alice, ticker, clock):
        alice.start_timer(0, 5)
        clock.advance(61.5)
        ticker.fire()
        assert alice.timer.remaining_ms == 238_500
        assert alice.timer.display == "00:03:58"

    def test_expiry_deletes_server_row(self, alice, ticker, clock, notifier):
        alice.start_timer(0, 5)
        clock.advance(300)
        ticker.fire()

        assert alice.timer_state == TimerState.EXPIRED
        assert alice.timer.remaining_ms == 0
        assert alice.timer.display == "00:00:00"
        assert not ticker.running
        assert notifier.scheduled() == []
        assert alice.api.get_timer_data() is None
        assert notifier.alerts[-1] == ("Timer Expired!", "Your parking time is up!")

    def test_expiry_alert_mentions_spot_address(self, alice, ticker, clock, notifier):
        alice.save_spot(29.76, -95.37, address="Lot A")
        alice.start_timer(0, 1)
        clock.advance(120)
        ticker.fire()
        assert notifier.alerts[-1][1] == "Your parking time is up!\nLocation: Lot A"

    def test_user_switch_halts_tick_without_mutation(self, alice, ticker, clock):
        alice.start_timer(0, 5)
        end_time = alice.timer.end_time
        alice.session.update_user(UserResponse(id=999, username="mallory"))

        clock.advance(600)
        ticker.fire()

        assert not ticker.running
        assert alice.timer_state == TimerState.ACTIVE
        assert alice.timer.end_time == end_time
        assert alice.timer.remaining_ms == 300_000

    def test_dismiss_returns_to_idle(self, alice, ticker, clock):
        alice.start_timer(0, 1)
        clock.advance(60)
        ticker.fire()
        alice.timer.dismiss()
        assert alice.timer_state == TimerState.IDLE
        assert alice.timer.remaining_ms is None


class TestCancel:
    """Test suite for canceling and clearing."""

    def test_cancel_deletes_row(self, alice, notifier, ticker):
        alice.start_timer(0, 5)
        alice.cancel_timer()

        assert alice.timer_state == TimerState.IDLE
        assert alice.message == "Timer canceled"
        assert not ticker.running
        assert notifier.scheduled() == []
        assert "Timer Canceled" in notifier.alert_titles
        assert alice.api.get_timer_data() is None

    def test_clear_spot_deletes_timer(self, alice):
        alice.save_spot(29.76, -95.37)
        alice.start_timer(0, 5)
        alice.clear_spot()

        assert alice.timer_state == TimerState.IDLE
        assert alice.spot is None
        assert alice.api.get_timer_data() is None
        assert alice.api.get_parking_spot() is None


class TestReconcile:
    """Test suite for reconciling with the server row."""

    def test_no_row_is_idle(self, alice):
        assert alice.timer.reconcile() == TimerState.IDLE

    def test_future_end_resumes_countdown(self, alice, clock, ticker, notifier):
        alice.api.save_timer_data(TimerDataCreate(timer_end=clock() + timedelta(seconds=90), timer_minutes=2))

        assert alice.timer.reconcile() == TimerState.ACTIVE
        assert alice.timer.remaining_ms == 90_000
        assert ticker.running
        assert len(notifier.scheduled()) == 1

    def test_past_end_expires_immediately(self, alice, clock, notifier):
        """A timer that ran out while the client was closed never shows negative time."""
        alice.api.save_timer_data(TimerDataCreate(timer_end=clock() - timedelta(minutes=3)))

        assert alice.timer.reconcile() == TimerState.EXPIRED
        assert alice.timer.remaining_ms == 0
        assert alice.timer.display == "00:00:00"
        assert "Timer Expired!" in notifier.alert_titles
        assert alice.api.get_timer_data() is None

    def test_inactive_row_is_idle(self, alice, clock):
        alice.api.save_timer_data(
            TimerDataCreate(timer_end=clock() + timedelta(minutes=5), timer_active=False)
        )
        assert alice.timer.reconcile() == TimerState.IDLE


class TestSessionChanges:
    """Test suite for logout and switching accounts."""

    def test_logout_keeps_server_row(self, alice, notifier, ticker, clock):
        alice.start_timer(0, 5)
        alice.logout()

        assert alice.timer_state == TimerState.IDLE
        assert not ticker.running
        assert notifier.scheduled() == []

        clock.advance(60)
        alice.login("alice", "pw123")
        assert alice.timer_state == TimerState.ACTIVE
        assert alice.timer.remaining_ms == 240_000

    def test_login_as_other_user_does_not_show_previous_timer(self, client_app):
        client_app.register("bob", "pw")
        client_app.logout()
        client_app.register("alice", "pw123")
        client_app.start_timer(0, 5)

        client_app.login("bob", "pw")

        assert client_app.user.username == "bob"
        assert client_app.timer_state == TimerState.IDLE
        assert client_app.timer.owner_id is None


class StubTimerAPI:
    """Timer endpoints in memory; delete_timer_data can be held open with `release`."""

    def __init__(self):
        self.saved = []
        self.deleted = 0
        self.delete_started = threading.Event()
        self.release = None

    def save_timer_data(self, timer):
        self.saved.append(timer)

    def get_timer_data(self):
        return None

    def delete_timer_data(self):
        self.delete_started.set()
        if self.release is not None:
            self.release.wait(timeout=5)
        self.deleted += 1


class TestThreadTicker:
    """Test suite for the controller driven by the real background ticker."""

    @pytest.fixture
    def session(self, store):
        session = AuthSession(store)
        session.start("token-123", UserResponse(id=1, username="alice"))
        return session

    def make_controller(self, session, notifier, clock, api, on_change=None):
        return TimerController(
            api,
            session,
            notifier,
            ticker=ThreadTicker(),
            clock=clock,
            tick_interval=0.01,
            on_change=on_change,
        )

    def test_background_tick_expires_timer(self, session, notifier, clock):
        api = StubTimerAPI()
        expired = threading.Event()
        controller = self.make_controller(
            session,
            notifier,
            clock,
            api,
            on_change=lambda c: expired.set() if c.state == TimerState.EXPIRED else None,
        )

        controller.start(0, 1)
        clock.advance(60)

        assert expired.wait(timeout=2)
        assert api.deleted == 1
        assert not controller.ticker.running
        assert "Timer Expired!" in notifier.alert_titles

    def test_session_change_during_expiry_skips_alert(self, session, notifier, clock):
        api = StubTimerAPI()
        api.release = threading.Event()
        controller = self.make_controller(session, notifier, clock, api)

        controller.start(0, 1)
        clock.advance(60)
        assert api.delete_started.wait(timeout=2)

        session.update_user(UserResponse(id=2, username="bob"))
        api.release.set()
        # Ждёт, пока поток тикера отпустит замок контроллера
        controller.reset_local()

        assert "Timer Expired!" not in notifier.alert_titles
        assert controller.state == TimerState.IDLE
        assert controller.owner_id is None


def test_stopped_loop_tick_is_ignored(alice, ticker, clock):
    """A tick from a loop that was already replaced does not touch the new countdown."""
    alice.start_timer(0, 5)
    stale_tick = ticker.callback
    alice.cancel_timer()
    alice.start_timer(0, 1)

    clock.advance(120)
    stale_tick()

    assert alice.timer_state == TimerState.ACTIVE
    assert alice.api.get_timer_data() is not None
