import pytest

from partners.models import DeliveryPartner
from partners.policy import DispatchPolicy
from partners.selection import find_nearby_partners
from routing.eta_service import EtaEstimator
from routing.geofence import haversine_km, nearby
from routing.osrm_client import OSRMClient, OSRMError

TRICHY = (10.79, 78.70)
NEXT_DOOR = (10.80, 78.71)


def test_haversine_known_distance():
    """(10.79, 78.70) -> (10.80, 78.71) is roughly 1.5 km."""
    distance = haversine_km(TRICHY, NEXT_DOOR)
    assert 1.4 < distance < 1.7
    assert haversine_km(TRICHY, TRICHY) == 0.0


def test_radius_includes_and_excludes():
    partner = DeliveryPartner.new("p1", *NEXT_DOOR)

    assert [m.item.id for m in nearby(TRICHY, [partner], 5.0)] == ["p1"]
    assert nearby(TRICHY, [partner], 0.1) == []


def test_sorted_by_distance_and_stable_on_ties():
    a = DeliveryPartner.new("a", 10.80, 78.70)
    b = DeliveryPartner.new("b", 10.79, 78.72)
    tie = DeliveryPartner.new("tie", 10.80, 78.70)

    matches = nearby(TRICHY, [b, a, tie], 10.0)

    assert [m.item.id for m in matches] == ["a", "tie", "b"]
    assert matches[0].distance_km <= matches[-1].distance_km


def test_candidates_without_location_are_skipped():
    unknown = DeliveryPartner.new("nowhere")
    assert nearby(TRICHY, [unknown], 1000.0) == []


def test_custom_location_accessor():
    points = [{"id": "x", "at": NEXT_DOOR}, {"id": "y", "at": None}]
    matches = nearby(TRICHY, points, 5.0, location=lambda p: p["at"])
    assert [m.item["id"] for m in matches] == ["x"]


def test_negative_radius_rejected():
    with pytest.raises(ValueError):
        nearby(TRICHY, [], -1)


def test_find_nearby_partners_filters_and_caps():
    """Only online+available partners, closest first, at most max_offers."""
    pool = [
        DeliveryPartner.new("busy", 10.791, 78.701, is_available=False),
        DeliveryPartner.new("offline", 10.791, 78.701, is_online=False),
        DeliveryPartner.new("close", 10.792, 78.702),
        DeliveryPartner.new("closer", 10.7905, 78.7005),
        DeliveryPartner.new("far", 12.0, 80.0),
    ]
    policy = DispatchPolicy(offer_radius_km=10.0, max_offers=1)

    matches = find_nearby_partners(TRICHY, pool, policy)

    assert [m.item.id for m in matches] == ["closer"]


class _DownOSRM:
    def compute_route(self, coordinates):
        raise OSRMError("connection refused")


class _FixedOSRM:
    def compute_route(self, coordinates):
        return {"duration": 600.0, "distance": 4000.0}


def test_eta_uses_osrm_duration_plus_handling():
    eta = EtaEstimator(osrm=_FixedOSRM(), handling_minutes=15)
    assert eta.estimate_minutes(TRICHY, NEXT_DOOR) == 25


def test_eta_falls_back_to_great_circle(caplog):
    eta = EtaEstimator(osrm=_DownOSRM(), average_speed_kmh=30, handling_minutes=0)

    minutes = eta.estimate_minutes(TRICHY, NEXT_DOOR)

    # ~1.5 km at 30 km/h, rounded up
    assert minutes == 4
    assert "falling back" in caplog.text


def test_eta_default_when_location_missing():
    assert EtaEstimator(default_minutes=45).estimate_minutes(None, NEXT_DOOR) == 45


def test_policy_validation():
    with pytest.raises(ValueError):
        DispatchPolicy(offer_radius_km=0).validate()
    with pytest.raises(ValueError):
        DispatchPolicy(max_offers=0).validate()


class _OSRMResponse:
    def __init__(self, data):
        self.data = data

    def json(self):
        return self.data


def test_osrm_route_uses_lon_lat_order(monkeypatch):
    calls = []

    def fake_get(url, params=None, timeout=None):
        calls.append(url)
        return _OSRMResponse({"code": "Ok", "routes": [{"distance": 1850.0, "duration": 240.0}]})

    monkeypatch.setattr("routing.osrm_client.requests.get", fake_get)
    client = OSRMClient(base_url="http://osrm.local")

    assert client.compute_route([(10.79, 78.70), (10.80, 78.71)]) == {"distance": 1850.0, "duration": 240.0}
    assert calls == ["http://osrm.local/route/v1/driving/78.7,10.79;78.71,10.8"]


def test_osrm_no_route_raises(monkeypatch):
    monkeypatch.setattr(
        "routing.osrm_client.requests.get",
        lambda url, params=None, timeout=None: _OSRMResponse({"code": "NoRoute", "message": "Impossible route"}),
    )
    with pytest.raises(OSRMError, match="Impossible route"):
        OSRMClient(base_url="http://osrm.local").compute_route([TRICHY, NEXT_DOOR])


def test_osrm_client_only_built_when_configured(monkeypatch):
    monkeypatch.delenv("OSRM_BASE_URL", raising=False)
    assert OSRMClient.from_env() is None
