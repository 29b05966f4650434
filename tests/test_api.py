"""End-to-end tests through the HTTP and WebSocket surface."""

import time
from urllib.parse import urlencode

import pytest
from starlette.websockets import WebSocketDisconnect

from models.order import OrderStatus
from models.profile import UserRole
from services.auth_service import AuthService

NEW_ORDER = {
    "pickup_address": "Cairo Road, Lusaka",
    "pickup_lat": -15.4167,
    "pickup_lng": 28.2833,
    "dropoff_address": "Manda Hill, Lusaka",
    "dropoff_lat": -15.3982,
    "dropoff_lng": 28.3070,
    "receiver_name": "Bupe",
    "receiver_phone": "+260971234567",
}


# ---- auth ------------------------------------------------------------------


def test_signup_login_me_logout(client) -> None:
    signup = client.post(
        "/api/auth/signup",
        json={
            "email": "Chanda.Phiri@gmail.com",
            "password": "Passw0rd!",
            "full_name": "Chanda  Phiri",
            "role": "driver",
            "vehicle_type": "motorcycle",
        },
    )
    assert signup.status_code == 201
    assert signup.json()["home_path"] == "/dashboard/driver"

    login = client.post("/api/auth/login", json={"email": "chanda.phiri@gmail.com", "password": "Passw0rd!"})
    assert login.status_code == 200
    assert client.cookies.get("access_token")

    me = client.get("/api/auth/me")
    assert me.status_code == 200
    assert me.json()["email"] == "chanda.phiri@gmail.com"
    assert me.json()["full_name"] == "Chanda Phiri"

    assert client.post("/api/presence/start", json={"latitude": -15.41, "longitude": 28.28}).json()["is_online"] is True
    assert client.post("/api/auth/logout").status_code == 200
    assert client.get("/api/auth/me").status_code == 401

    relogin = client.post("/api/auth/login", json={"email": "chanda.phiri@gmail.com", "password": "Passw0rd!"})
    assert client.get("/api/auth/me", headers={"Authorization": f"Bearer {relogin.json()['access_token']}"}).json()["is_online"] is False


def test_signup_rules(client) -> None:
    base = {"email": "mwila@gmail.com", "password": "Passw0rd!", "full_name": "Mwila Banda"}
    assert client.post("/api/auth/signup", json=dict(base, role="admin")).status_code == 422
    assert client.post("/api/auth/signup", json=dict(base, password="short")).status_code == 422
    assert client.post("/api/auth/signup", json=dict(base, role="driver")).status_code == 400
    assert client.post("/api/auth/signup", json=base).status_code == 201
    assert client.post("/api/auth/signup", json=base).status_code == 400


def test_wrong_password(client, client_user) -> None:
    response = client.post("/api/auth/login", json={"email": client_user.email, "password": "nope"})
    assert response.status_code == 401


def test_refresh(client, client_user) -> None:
    tokens = AuthService.generate_tokens(client_user)
    response = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert response.status_code == 200
    assert response.json()["user_id"] == client_user.id
    assert client.post("/api/auth/refresh", json={"refresh_token": tokens["access_token"]}).status_code == 401


# ---- dispatch flow ---------------------------------------------------------


def test_delivery_flow(client, admin, client_user, driver, make_profile, auth_headers) -> None:
    rival = make_profile(UserRole.DRIVER, is_online=True)

    created = client.post("/api/orders", json=NEW_ORDER, headers=auth_headers(client_user))
    assert created.status_code == 201
    order = created.json()
    assert order["status"] == "pending"
    assert order["price"] > 25

    pool = client.get("/api/orders/available", headers=auth_headers(driver)).json()
    assert [o["id"] for o in pool] == [order["id"]]

    won = client.post(f"/api/orders/{order['id']}/claim", headers=auth_headers(driver))
    assert won.status_code == 200
    assert won.json()["claimed"] is True

    lost = client.post(f"/api/orders/{order['id']}/claim", headers=auth_headers(rival))
    assert lost.status_code == 200
    assert lost.json() == {
        "claimed": False,
        "message": "Order taken by another driver or unavailable.",
        "current_status": "assigned",
        "order": None,
    }

    early = client.post(f"/api/orders/{order['id']}/complete", headers=auth_headers(driver))
    assert early.status_code == 409
    assert early.json()["current_status"] == "assigned"

    assert client.post(f"/api/orders/{order['id']}/pickup", headers=auth_headers(rival)).status_code == 403
    assert client.post(f"/api/orders/{order['id']}/pickup", headers=auth_headers(driver)).json()["status"] == "picked_up"
    assert client.post(f"/api/orders/{order['id']}/complete", headers=auth_headers(driver)).json()["status"] == "delivered"

    again = client.post(f"/api/orders/{order['id']}/cancel", headers=auth_headers(admin))
    assert again.status_code == 409
    assert again.json()["current_status"] == "delivered"

    seen = client.get(f"/api/orders/{order['id']}", headers=auth_headers(client_user)).json()
    assert seen["status"] == "delivered"
    assert seen["assigned_driver_id"] == driver.id

    overview = client.get("/dashboard/admin", headers=auth_headers(admin)).json()
    assert overview["delivery_count"] == 1
    assert overview["total_revenue"] == order["price"]
    assert overview["success_rate"] == 100.0

    payroll = client.get("/dashboard/admin/payroll", headers=auth_headers(admin)).json()
    assert payroll == [
        {
            "driver_id": driver.id,
            "full_name": driver.full_name,
            "deliveries": 1,
            "total_earned": order["price"],
            "pending_payout": order["price"],
            "payout_eligible": order["price"] >= 100,
        }
    ]

    today = client.get("/dashboard/driver", headers=auth_headers(driver)).json()["today"]
    assert today == {"deliveries_count": 1, "total_earnings": order["price"]}

    history = client.get("/dashboard/driver/history", headers=auth_headers(driver)).json()
    assert [o["id"] for o in history] == [order["id"]]

    summary = client.get("/dashboard/client", headers=auth_headers(client_user)).json()
    assert summary["delivered_orders"] == 1
    assert summary["total_spent"] == order["price"]


def test_roles_are_enforced(client, client_user, driver, make_order, auth_headers) -> None:
    order = make_order()
    assert client.post(f"/api/orders/{order.id}/claim", headers=auth_headers(client_user)).status_code == 403
    assert client.post("/api/orders", json=NEW_ORDER, headers=auth_headers(driver)).status_code == 403
    assert client.get("/dashboard/admin/payroll", headers=auth_headers(driver), follow_redirects=False).status_code == 307
    assert client.get("/api/settings", headers=auth_headers(driver)).status_code == 403
    assert client.get("/api/orders").status_code == 401


def test_client_cancel_and_missing_order(client, client_user, driver, make_order, auth_headers) -> None:
    pending = make_order(client_id=client_user.id)
    accepted = make_order(client_id=client_user.id, status=OrderStatus.ASSIGNED, assigned_driver_id=driver.id)

    cancelled = client.post(f"/api/orders/{pending.id}/cancel", json={"reason": "Wrong address"}, headers=auth_headers(client_user))
    assert cancelled.json()["status"] == "cancelled"
    assert client.post(f"/api/orders/{accepted.id}/cancel", headers=auth_headers(client_user)).status_code == 403
    assert client.post(f"/api/orders/{accepted.id}/cancel", headers=auth_headers(driver)).status_code == 403
    assert client.get("/api/orders/9999", headers=auth_headers(client_user)).status_code == 404


def test_offline_driver_sees_no_offers_and_cannot_claim(client, make_profile, make_order, auth_headers) -> None:
    offline = make_profile(UserRole.DRIVER, is_online=False)
    order = make_order()
    assert client.get("/api/orders/available", headers=auth_headers(offline)).json() == []
    assert client.post(f"/api/orders/{order.id}/claim", headers=auth_headers(offline)).status_code == 403


def test_location_rejected_after_stop(client, driver, auth_headers) -> None:
    headers = auth_headers(driver)
    assert client.post("/api/presence/location", json={"latitude": -15.40, "longitude": 28.30}, headers=headers).status_code == 200
    assert client.post("/api/presence/stop", headers=headers).json()["is_online"] is False
    assert client.post("/api/presence/location", json={"latitude": -15.41, "longitude": 28.31}, headers=headers).status_code == 409


def test_admin_dispatch_and_fleet(client, admin, driver, auth_headers) -> None:
    created = client.post(
        "/api/orders/admin",
        json=dict(NEW_ORDER, customer_name="Walk-in Customer", assigned_driver_id=driver.id, price=75),
        headers=auth_headers(admin),
    )
    assert created.status_code == 201
    assert created.json()["status"] == "assigned"

    fleet = client.get("/dashboard/admin/fleet", headers=auth_headers(admin)).json()
    assert fleet[0]["driver_id"] == driver.id
    assert fleet[0]["active_order_id"] == created.json()["id"]

    online = client.get("/api/presence/online", headers=auth_headers(admin)).json()
    assert [d["id"] for d in online] == [driver.id]

    log = client.get("/dashboard/admin/orders", params={"status": "assigned"}, headers=auth_headers(admin)).json()
    assert [o["id"] for o in log] == [created.json()["id"]]

    activity = client.get("/api/logs/activity", params={"entity_id": str(created.json()["id"])}, headers=auth_headers(admin)).json()
    assert activity[0]["action"] == "dispatch_order"


def test_price_quote_matches_booking(client, client_user, auth_headers) -> None:
    body = {key: NEW_ORDER[key] for key in ("pickup_lat", "pickup_lng", "dropoff_lat", "dropoff_lng")}
    quote = client.post("/api/pricing/quote", json=dict(body, vehicle_type="truck"), headers=auth_headers(client_user)).json()
    booked = client.post("/api/orders", json=dict(NEW_ORDER, vehicle_type_required="truck"), headers=auth_headers(client_user)).json()
    assert quote["vehicle_multiplier"] == 3.5
    assert quote["price"] == booked["price"]


def test_settings_endpoints(client, admin, client_user, auth_headers) -> None:
    headers = auth_headers(admin)
    updated = client.put("/api/settings", json={"base_delivery_fee": 30, "km_rate": 6}, headers=headers)
    assert updated.status_code == 200
    assert float(updated.json()["base_delivery_fee"]) == 30

    assert client.put("/api/settings/maintenance", json={"enabled": True}, headers=headers).status_code == 200
    assert client.put("/api/settings/app-version", json={"min_version": "2.0.0"}, headers=headers).status_code == 200
    assert client.put("/api/settings/app-version", json={"min_version": "1.5.0"}, headers=headers).status_code == 422

    status = client.get("/api/settings/app-status").json()
    assert status == {"maintenance_mode": True, "min_app_version": "2.0.0"}

    quote = client.post(
        "/api/pricing/quote",
        json={"pickup_lat": -15.4, "pickup_lng": 28.3, "dropoff_lat": -15.4, "dropoff_lng": 28.3},
        headers=auth_headers(client_user),
    ).json()
    assert quote["price"] == 30


def test_profile_update(client, driver, admin, auth_headers) -> None:
    response = client.put("/api/profile", json={"phone": "+260 977 000 111", "vehicle_type": "van"}, headers=auth_headers(driver))
    assert response.json()["phone"] == "+260977000111"
    assert response.json()["vehicle_type"] == "van"

    drivers = client.get("/api/profile/drivers", params={"online": True}, headers=auth_headers(admin)).json()
    assert [d["id"] for d in drivers] == [driver.id]

    deactivated = client.put(f"/api/profile/drivers/{driver.id}/status", json={"is_active": False}, headers=auth_headers(admin))
    assert deactivated.json()["is_online"] is False
    assert client.get("/api/profile", headers=auth_headers(driver)).status_code == 403


def test_health(client) -> None:
    assert client.get("/health").json()["status"] == "healthy"


# ---- realtime --------------------------------------------------------------


def realtime_url(profile, table: str, row_filter: str = None) -> str:
    params = {"token": AuthService.generate_tokens(profile)["access_token"], "table": table}
    if row_filter:
        params["filter"] = row_filter
    return f"/api/realtime/ws?{urlencode(params)}"


def test_driver_receives_new_pending_orders(client, feed, driver, client_user, auth_headers) -> None:
    with client.websocket_connect(realtime_url(driver, "orders", "status=eq.pending")) as ws:
        assert ws.receive_json()["type"] == "subscribed"
        assert feed.subscriber_count("orders") == 1

        created = client.post("/api/orders", json=NEW_ORDER, headers=auth_headers(client_user)).json()

        message = ws.receive_json()
        assert message["event"] == "INSERT"
        assert message["new"]["id"] == created["id"]
        assert message["new"]["status"] == "pending"

        ws.send_text("ping")
        assert ws.receive_json() == {"type": "pong"}

    for _ in range(50):
        if feed.subscriber_count() == 0:
            break
        time.sleep(0.02)
    assert feed.subscriber_count() == 0


def test_idle_sockets_hold_no_database_connection(client, engine, make_profile) -> None:
    drivers = [make_profile(UserRole.DRIVER, is_online=True) for _ in range(3)]
    baseline = engine.pool.checkedout()

    with client.websocket_connect(realtime_url(drivers[0], "orders", "status=eq.pending")) as first, \
            client.websocket_connect(realtime_url(drivers[1], "orders", "status=eq.pending")) as second, \
            client.websocket_connect(realtime_url(drivers[2], "orders", "status=eq.pending")) as third:
        for ws in (first, second, third):
            assert ws.receive_json()["type"] == "subscribed"
        assert engine.pool.checkedout() == baseline


def test_deactivated_user_cannot_subscribe(client, db, driver) -> None:
    driver.is_active = False
    db.commit()
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect(realtime_url(driver, "orders", "status=eq.pending")) as ws:
            ws.receive_json()


@pytest.mark.parametrize(
    "role_fixture, table, row_filter",
    [
        ("client_user", "orders", "status=eq.pending"),
        ("driver", "orders", None),
        ("driver", "orders", "client_id=eq.1"),
        ("client_user", "profiles", None),
        ("admin", "error_logs", None),
    ],
)
def test_forbidden_subscriptions_are_refused(client, request, role_fixture, table, row_filter) -> None:
    profile = request.getfixturevalue(role_fixture)
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect(realtime_url(profile, table, row_filter)) as ws:
            ws.receive_json()


def test_bad_token_is_refused(client) -> None:
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/api/realtime/ws?token=garbage&table=orders") as ws:
            ws.receive_json()
