from fastapi.testclient import TestClient

from app.main import app
from scripts.api_test import _rand_suffix, run_flow


def test_rand_suffix_length():
    value = _rand_suffix(6)
    assert len(value) == 6
    assert value.isalnum()


def test_run_flow_against_app():
    with TestClient(app) as client:
        results = run_flow(client, "", email="smoke@x.com")

    assert [item["step"] for item in results] == [
        "register",
        "refresh",
        "replay-old-refresh",
        "logout",
        "refresh-after-logout",
    ]
    assert all(item["ok"] for item in results), results
