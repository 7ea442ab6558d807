from fastapi.routing import APIRoute

import assocportal.main as app_main
from assocportal.core import version


def test_health_is_public(client_as):
    response = client_as(None).get("/system/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_version_reports_build_metadata(client_as, monkeypatch):
    version.get_version_info.cache_clear()
    monkeypatch.setenv("GIT_SHA", "abc1234")
    monkeypatch.setenv("APP_ENV", "staging")
    try:
        body = client_as(None).get("/system/version").json()
    finally:
        version.get_version_info.cache_clear()

    assert body["gitSha"] == "abc1234"
    assert body["env"] == "staging"
    assert body["buildTime"]


def test_responses_carry_request_id(client_as):
    response = client_as(None).get("/system/health", headers={"X-Request-ID": "req-42"})

    assert response.headers["X-Request-ID"] == "req-42"


def test_uploads_prefix_has_no_unauthenticated_routes():
    prefix = app_main.uploads_route

    readers = [
        route
        for route in app_main.app.routes
        if isinstance(route, APIRoute) and route.path.startswith(prefix)
    ]

    assert readers == []
