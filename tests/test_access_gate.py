"""Tests for the role-based dashboard gate."""

import pytest

from database import get_db
from main import app
from middleware.access_gate import resolve_role, resolve_route
from models.profile import UserRole
from services.auth_service import AuthService


@pytest.mark.parametrize(
    "path, authenticated, role, expected",
    [
        ("/dashboard", False, None, "/login"),
        ("/dashboard/admin", False, None, "/login"),
        ("/login", False, None, None),
        ("/api/orders", False, None, None),
        ("/dashboard/admin", True, UserRole.DRIVER, "/dashboard/driver"),
        ("/dashboard/admin/payroll", True, UserRole.CLIENT, "/dashboard/client"),
        ("/dashboard", True, UserRole.ADMIN, "/dashboard/admin"),
        ("/dashboard/driver", True, UserRole.DRIVER, None),
        ("/dashboard/driver/history", True, UserRole.DRIVER, None),
        ("/dashboard/drivers", True, UserRole.DRIVER, "/dashboard/driver"),
        ("/login", True, UserRole.CLIENT, "/dashboard/client"),
        ("/signup", True, UserRole.ADMIN, "/dashboard/admin"),
        ("/dashboard/client", True, None, "/login"),
        ("/api/orders", True, None, None),
    ],
)
def test_resolve_route(path, authenticated, role, expected) -> None:
    assert resolve_route(path, authenticated, role) == expected


def test_anonymous_dashboard_redirects_to_login(client) -> None:
    response = client.get("/dashboard/admin", follow_redirects=False)
    assert response.status_code == 307
    assert response.headers["location"] == "/login"


def test_driver_on_admin_path_is_sent_home(client, driver, auth_headers) -> None:
    response = client.get("/dashboard/admin", headers=auth_headers(driver), follow_redirects=False)
    assert response.status_code == 307
    assert response.headers["location"] == "/dashboard/driver"


def test_driver_reaches_own_dashboard(client, driver, auth_headers) -> None:
    response = client.get("/dashboard/driver", headers=auth_headers(driver), follow_redirects=False)
    assert response.status_code == 200
    assert response.json()["is_online"] is True


def test_cookie_identity_is_honoured(client, client_user) -> None:
    client.cookies.set("access_token", AuthService.generate_tokens(client_user)["access_token"])
    response = client.get("/login", follow_redirects=False)
    assert response.status_code == 307
    assert response.headers["location"] == "/dashboard/client"


def test_unresolvable_profile_is_denied(client, db, make_profile, auth_headers) -> None:
    ghost = make_profile(UserRole.CLIENT)
    headers = auth_headers(ghost)
    db.delete(ghost)
    db.commit()

    response = client.get("/dashboard/client", headers=headers, follow_redirects=False)
    assert response.status_code == 307
    assert response.headers["location"] == "/login"


def test_invalid_token_is_anonymous(client) -> None:
    response = client.get(
        "/dashboard/client", headers={"Authorization": "Bearer not-a-token"}, follow_redirects=False
    )
    assert response.headers["location"] == "/login"


def test_resolve_role_without_database_denies() -> None:
    assert resolve_role(None, 1) is None


def test_resolve_role_releases_its_connection(engine, session_factory, db, driver) -> None:
    baseline = engine.pool.checkedout()
    assert resolve_role(session_factory, driver.id) == UserRole.DRIVER
    assert engine.pool.checkedout() == baseline

    driver.is_active = False
    db.commit()
    assert resolve_role(session_factory, driver.id) is None


def test_gate_reads_roles_without_request_dependencies(client, client_user) -> None:
    # Only the gate runs on /login, so the app-level session factory is all it needs
    app.dependency_overrides.pop(get_db)
    client.cookies.set("access_token", AuthService.generate_tokens(client_user)["access_token"])
    response = client.get("/login", follow_redirects=False)
    assert response.status_code == 307
    assert response.headers["location"] == "/dashboard/client"
