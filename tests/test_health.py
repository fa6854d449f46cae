"""Smoke tests for the health endpoints."""
from __future__ import annotations

from unittest.mock import patch

from salonbook.errors import ConnectivityError


def test_health_endpoint(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json == {"status": "ok"}


def test_database_health_endpoint_ok(client) -> None:
    response = client.get("/db-health")

    assert response.status_code == 200
    assert response.json == {"database": "ok"}


def test_database_health_endpoint_down(app, client) -> None:
    with patch.object(app.extensions["gateway"], "ping", side_effect=ConnectivityError("down")):
        response = client.get("/db-health")

    assert response.status_code == 500
    assert response.json == {"database": "unavailable"}
