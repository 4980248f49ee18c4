"""Tests for offline staging and synchronization of the parking spot."""
from datetime import datetime, timezone

import pytest

from parkspot.client.exceptions import ParkSpotAPIError, ServiceUnavailableError
from parkspot.client.storage import LocalStore
from parkspot.client.sync import OfflineSpotSync, SyncStatus, staging_key
from parkspot.schemas import ParkingSpotCreate, ParkingSpotResponse


class StubAPI:
    """Records calls; save_parking_spot fails with `save_error` when set."""

    def __init__(self, server_up=True, save_error=None):
        self.server_up = server_up
        self.save_error = save_error
        self.calls = []

    def check_server_status(self):
        self.calls.append("health")
        return self.server_up

    def save_parking_spot(self, spot, **request_options):
        self.calls.append(("save", request_options))
        if self.save_error is not None:
            raise self.save_error
        return ParkingSpotResponse(
            id=7,
            user_id=1,
            latitude=spot.latitude,
            longitude=spot.longitude,
            address=spot.address,
            timestamp=spot.timestamp or datetime(2026, 10, 18, tzinfo=timezone.utc),
        )


def make_spot(latitude=29.76, longitude=-95.37, address="Lot A"):
    return ParkingSpotCreate(latitude=latitude, longitude=longitude, address=address)


@pytest.fixture
def network():
    state = {"up": True, "checks": 0}

    def check():
        state["checks"] += 1
        return state["up"]

    check.state = state
    return check


class TestSaveSpot:
    """Test suite for OfflineSpotSync.save_spot."""

    def test_online_save_does_not_stage(self, store, network):
        sync = OfflineSpotSync(StubAPI(), store, network)
        result = sync.save_spot(make_spot(), user_id=1)

        assert result.staged is False
        assert result.spot.id == 7
        assert result.message == "Parking spot saved successfully!"
        assert sync.staged(1) is None

    def test_unavailable_server_stages_payload(self, store, network):
        api = StubAPI(save_error=ServiceUnavailableError("down", status_code=503))
        sync = OfflineSpotSync(api, store, network)

        result = sync.save_spot(make_spot(), user_id=1)

        assert result.staged is True
        assert result.spot.id == 0
        assert result.spot.latitude == 29.76
        assert result.message == "Saved locally. Will sync when online."
        assert sync.staged(1) == make_spot()

    def test_second_failure_overwrites_slot(self, store, network):
        api = StubAPI(save_error=ServiceUnavailableError("down"))
        sync = OfflineSpotSync(api, store, network)

        sync.save_spot(make_spot(latitude=1.0), user_id=1)
        sync.save_spot(make_spot(latitude=2.0), user_id=1)

        assert sync.staged(1).latitude == 2.0
        assert store.keys() == [staging_key(1)]

    def test_other_errors_propagate(self, store, network):
        api = StubAPI(save_error=ParkSpotAPIError(400, "Latitude and longitude are required"))
        sync = OfflineSpotSync(api, store, network)

        with pytest.raises(ParkSpotAPIError):
            sync.save_spot(make_spot(), user_id=1)
        assert sync.staged(1) is None

    def test_staged_spot_survives_restart(self, tmp_path, network):
        path = tmp_path / "storage.json"
        api = StubAPI(save_error=ServiceUnavailableError("down"))
        OfflineSpotSync(api, LocalStore(path), network).save_spot(make_spot(), user_id=1)

        reopened = OfflineSpotSync(StubAPI(), LocalStore(path), network)
        assert reopened.staged(1).address == "Lot A"


class TestSync:
    """Test suite for OfflineSpotSync.sync."""

    def test_no_network_stops_before_health(self, store, network):
        api = StubAPI()
        sync = OfflineSpotSync(api, store, network)
        sync.stage(make_spot(), 1)
        network.state["up"] = False

        result = sync.sync(1)

        assert result.status == SyncStatus.NO_NETWORK
        assert api.calls == []
        assert sync.staged(1) is not None

    def test_server_down_stops_before_upload(self, store, network):
        api = StubAPI(server_up=False)
        sync = OfflineSpotSync(api, store, network)
        sync.stage(make_spot(), 1)

        result = sync.sync(1, manual=True)

        assert result.status == SyncStatus.SERVER_UNAVAILABLE
        assert api.calls == ["health"]
        assert sync.staged(1) is not None

    def test_nothing_staged(self, store, network):
        api = StubAPI()
        result = OfflineSpotSync(api, store, network).sync(1, manual=True)

        assert result.status == SyncStatus.NOTHING_STAGED
        assert result.message == "No offline parking data to synchronize."
        assert api.calls == ["health"]

    def test_success_clears_slot(self, store, network):
        api = StubAPI()
        sync = OfflineSpotSync(api, store, network)
        sync.stage(make_spot(), 1)

        result = sync.sync(1)

        assert result.ok
        assert result.spot.id == 7
        assert sync.staged(1) is None
        assert api.calls == ["health", ("save", {})]

    def test_slot_belongs_to_one_user(self, store, network):
        """Another user's sync never uploads someone else's staged spot."""
        api = StubAPI()
        sync = OfflineSpotSync(api, store, network)
        sync.stage(make_spot(address="Alice's lot"), 1)

        result = sync.sync(2)

        assert result.status == SyncStatus.NOTHING_STAGED
        assert ("save", {}) not in api.calls
        assert sync.staged(1).address == "Alice's lot"

    def test_manual_sync_skips_retries(self, store, network):
        api = StubAPI()
        sync = OfflineSpotSync(api, store, network)
        sync.stage(make_spot(), 1)

        sync.sync(1, manual=True)

        assert api.calls[-1] == ("save", {"skip_retry": True})

    @pytest.mark.parametrize(
        "error, expected",
        [
            (ServiceUnavailableError("bad gateway", status_code=502), "starting up or experiencing issues"),
            (ServiceUnavailableError("timeout", timed_out=True), "connection timed out"),
            (ServiceUnavailableError("refused"), "Could not reach the server"),
            (ParkSpotAPIError(500, "boom"), "Server error (500)"),
        ],
    )
    def test_failure_keeps_slot(self, store, network, error, expected):
        sync = OfflineSpotSync(StubAPI(save_error=error), store, network)
        sync.stage(make_spot(), 1)

        result = sync.sync(1, manual=True)

        assert result.status == SyncStatus.FAILED
        assert expected in result.message
        assert sync.staged(1) == make_spot()
