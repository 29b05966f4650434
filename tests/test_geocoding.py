"""Tests for the geocoding proxy."""

from typing import Callable

import httpx
import pytest

from config import Settings
from main import app
from models.log import ErrorLog
from services.exceptions import UpstreamServiceError
from services.geocoding_service import GeocodingService, coordinates_label, get_geocoding_service

NOMINATIM_RESULT = [
    {
        "place_id": 1234,
        "display_name": "Manda Hill, Great East Road, Lusaka, Zambia",
        "name": "Manda Hill",
        "lat": "-15.3982",
        "lon": "28.3070",
    }
]

MAPBOX_RESULT = {
    "features": [
        {
            "id": "poi.1",
            "place_name": "Arcades Shopping Mall, Great East Road, Lusaka",
            "text": "Arcades Shopping Mall",
            "center": [28.3326, -15.4038],
        }
    ]
}


def make_service(handler: Callable[[httpx.Request], httpx.Response], **overrides) -> GeocodingService:
    config = Settings(**overrides)
    return GeocodingService(config=config, client=httpx.Client(transport=httpx.MockTransport(handler)))


def test_nominatim_forward_is_normalized() -> None:
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=NOMINATIM_RESULT)

    results = make_service(handler).forward("manda hill")

    assert results == [
        {
            "id": 1234,
            "place_name": "Manda Hill, Great East Road, Lusaka, Zambia",
            "text": "Manda Hill",
            "center": [28.3070, -15.3982],
        }
    ]
    sent = requests[0]
    assert sent.url.path == "/search"
    assert sent.url.params["q"] == "manda hill"
    assert sent.url.params["viewbox"] == "28.1,-15.5,28.5,-15.2"
    assert sent.headers["User-Agent"] == "VDeliveries/1.0 (contact@vdeliveries.com)"


def test_mapbox_used_when_token_configured() -> None:
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=MAPBOX_RESULT)

    results = make_service(handler, mapbox_access_token="pk.test").forward("arcades mall")

    assert results[0]["text"] == "Arcades Shopping Mall"
    assert results[0]["center"] == [28.3326, -15.4038]
    sent = requests[0]
    assert sent.url.host == "api.mapbox.com"
    assert b"/arcades%20mall.json" in sent.url.raw_path
    assert sent.url.params["access_token"] == "pk.test"
    assert sent.url.params["limit"] == "5"


def test_reverse_falls_back_to_coordinates() -> None:
    service = make_service(lambda request: httpx.Response(200, json={"error": "Unable to geocode"}))
    assert service.reverse(-15.41234, 28.28766) == "GPS: -15.4123, 28.2877"
    assert coordinates_label(1, 2) == "GPS: 1.0000, 2.0000"


def test_provider_failure_raises() -> None:
    service = make_service(lambda request: httpx.Response(503))
    with pytest.raises(UpstreamServiceError):
        service.forward("anything")


def test_timeout_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(UpstreamServiceError):
        make_service(handler).reverse(-15.4, 28.3)


def test_endpoint_missing_parameters(client) -> None:
    assert client.get("/api/geocoding?type=forward").json() == {"error": "Missing parameters"}
    response = client.get("/api/geocoding?type=reverse&lat=-15.4")
    assert response.status_code == 400
    assert response.json() == {"error": "Missing parameters"}


def test_endpoint_forward_and_reverse(client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/search":
            return httpx.Response(200, json=NOMINATIM_RESULT)
        return httpx.Response(200, json={"display_name": "Cairo Road, Lusaka"})

    app.dependency_overrides[get_geocoding_service] = lambda: make_service(handler)

    forward = client.get("/api/geocoding", params={"type": "forward", "q": "manda"})
    assert forward.status_code == 200
    assert forward.json()[0]["place_name"].startswith("Manda Hill")

    reverse = client.get("/api/geocoding", params={"type": "reverse", "lat": -15.4167, "lon": 28.2833})
    assert reverse.json() == {"address": "Cairo Road, Lusaka"}


def test_endpoint_upstream_failure_is_logged(client, db) -> None:
    app.dependency_overrides[get_geocoding_service] = lambda: make_service(lambda request: httpx.Response(500))

    response = client.get("/api/geocoding", params={"type": "forward", "q": "manda"})

    assert response.status_code == 500
    assert "error" in response.json()
    assert db.query(ErrorLog).filter(ErrorLog.error_type == "GeocodingError").count() == 1


@pytest.mark.parametrize(
    "payload, overrides",
    [
        ([{"place_id": 1, "display_name": "Somewhere", "lat": "-15.4"}], {}),
        ({"error": "Unable to geocode"}, {}),
        (["not-a-place"], {}),
        (["unexpected"], {"mapbox_access_token": "pk.test"}),
        ({"features": [{"id": "poi.1", "place_name": "Kabulonga"}]}, {"mapbox_access_token": "pk.test"}),
    ],
)
def test_malformed_forward_payload_raises(payload, overrides) -> None:
    service = make_service(lambda request: httpx.Response(200, json=payload), **overrides)
    with pytest.raises(UpstreamServiceError):
        service.forward("kabulonga")


def test_malformed_reverse_payload_raises() -> None:
    service = make_service(lambda request: httpx.Response(200, json=["unexpected"]), mapbox_access_token="pk.test")
    with pytest.raises(UpstreamServiceError):
        service.reverse(-15.4, 28.3)


def test_endpoint_malformed_payload_is_an_error_body(client) -> None:
    bad = [{"place_id": 1, "display_name": "Somewhere", "lat": "-15.4"}]
    app.dependency_overrides[get_geocoding_service] = lambda: make_service(lambda request: httpx.Response(200, json=bad))

    response = client.get("/api/geocoding", params={"type": "forward", "q": "somewhere"})

    assert response.status_code == 500
    assert set(response.json()) == {"error"}


def test_endpoint_type_defaults_to_forward(client) -> None:
    app.dependency_overrides[get_geocoding_service] = lambda: make_service(lambda request: httpx.Response(200, json=NOMINATIM_RESULT))

    response = client.get("/api/geocoding", params={"q": "manda"})

    assert response.status_code == 200
    assert response.json()[0]["text"] == "Manda Hill"
