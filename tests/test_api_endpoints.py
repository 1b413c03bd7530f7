"""Tests for FastAPI REST and WebSocket endpoints using FakeProcess (no hardware).

Tests verify:
- Health and status reporting
- Lifecycle (start, stop, restart)
- Error mapping (refused → 409, SpawnError → 503, StopTimeout → 504)
- Latest-scan access and WebSocket streaming
- Shutdown stops a running lidar
"""

import time

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from fakes.fake_process import FakeConnectivity, FakeSpawner, FixedClock
from lidar_server_lib import LidarConfig, LidarServer, PointBuffer


def wait_until(predicate, timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def checker():
    return FakeConnectivity(connected=True)


@pytest.fixture
def spawner():
    return FakeSpawner()


@pytest.fixture
def buffer():
    return PointBuffer(maxlen=500)


@pytest.fixture
def server(checker, spawner, buffer):
    return LidarServer(
        config=LidarConfig(lidar_path="/opt/lidar/fake_lidar", stop_timeout_s=0.5),
        consumer=buffer,
        checker=checker,
        spawner=spawner,
        clock=FixedClock(system_time_ms=1000, local_time_s=10.0),
    )


@pytest.fixture
def client(server):
    """Test client; leaving the context runs the shutdown hook."""
    with TestClient(create_app(server)) as c:
        yield c
    if server.is_running():
        server.stop()


# =============================================================================
# Health & Status
# =============================================================================

def test_root_health_check(client):
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["service"] == "Lidar Server API"
    assert data["status"] == "online"

    assert client.get("/health").json() == data


def test_status_idle(client):
    response = client.get("/status")
    assert response.status_code == 200
    data = response.json()
    assert data["state"] == "idle"
    assert data["running"] is False
    assert data["ending"] is False
    assert data["connected"] is True
    assert data["pid"] is None
    assert data["points"] == 0
    assert data["scans"] == 0


def test_connected_endpoint(client, checker):
    assert client.get("/connected").json() == {"connected": True}
    checker.connected = False
    assert client.get("/connected").json() == {"connected": False}


# =============================================================================
# Lifecycle
# =============================================================================

def test_start_success(client, spawner):
    response = client.post("/start")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "started"
    assert data["pid"] == spawner.last.pid
    assert spawner.paths == ["/opt/lidar/fake_lidar"]

    status = client.get("/status").json()
    assert status["state"] == "running"
    assert status["running"] is True


def test_start_twice_conflict(client):
    client.post("/start")
    response = client.post("/start")
    assert response.status_code == 409
    assert "already running" in response.json()["detail"]


def test_start_not_connected(client, checker, spawner):
    checker.connected = False
    response = client.post("/start")
    assert response.status_code == 409
    assert "not connected" in response.json()["detail"]
    assert spawner.spawned == []


def test_start_spawn_failure_maps_to_503(client, spawner):
    spawner.fail = True
    response = client.post("/start")
    assert response.status_code == 503
    assert "Failed to start lidar" in response.json()["detail"]
    assert client.get("/status").json()["state"] == "idle"


def test_stop_not_running(client):
    response = client.post("/stop")
    assert response.status_code == 409
    assert "not running" in response.json()["detail"]


def test_start_stop_start(client, spawner):
    assert client.post("/start").status_code == 200
    response = client.post("/stop")
    assert response.status_code == 200
    assert response.json()["status"] == "stopped"
    assert spawner.last.killed is True

    assert client.post("/start").status_code == 200
    assert len(spawner.spawned) == 2


def test_stop_timeout_maps_to_504(client, spawner, server):
    spawner.process_kwargs["hang_on_wait"] = True
    client.post("/start")

    response = client.post("/stop")
    assert response.status_code == 504
    assert "did not exit" in response.json()["detail"]
    assert server.is_running() is True

    spawner.last.hang_on_wait = False
    assert client.post("/stop").status_code == 200


# =============================================================================
# Data Access
# =============================================================================

def test_latest_scan_empty(client):
    response = client.get("/scan/latest")
    assert response.status_code == 200
    assert response.json() == {"scans": 0, "points": []}


def test_latest_scan_after_rotation(client, spawner, buffer):
    client.post("/start")
    proc = spawner.last
    proc.feed_scan(1000, [0.0, 90.0, 180.0, 270.0], distance=500.0)
    proc.feed("1000,0.0,500.0s")

    assert wait_until(lambda: buffer.scan_count == 1)

    data = client.get("/scan/latest").json()
    assert data["scans"] == 1
    assert [p["angle"] for p in data["points"]] == [0.0, 90.0, 180.0, 270.0]
    assert data["points"][0] == {"timestamp": 10.0, "angle": 0.0, "distance": 500.0}

    status = client.get("/status").json()
    assert status["points"] == 5
    assert status["scans"] == 1


def test_latest_scan_without_buffer(checker, spawner):
    class NullConsumer:
        def add_point(self, point, is_new_scan) -> None:
            pass

    server = LidarServer(consumer=NullConsumer(), checker=checker, spawner=spawner)
    with TestClient(create_app(server)) as c:
        assert c.get("/scan/latest").status_code == 404
        assert c.get("/status").json()["points"] == 0


# =============================================================================
# WebSocket
# =============================================================================

def test_websocket_streams_new_points(client, spawner, buffer):
    client.post("/start")
    proc = spawner.last
    proc.feed("1000,10.0,100.0s")
    proc.feed("1000,20.0,100.0")
    assert wait_until(lambda: len(buffer) == 2)

    with client.websocket_connect("/stream") as websocket:
        first = websocket.receive_json()
        assert [p["angle"] for p in first["points"]] == [10.0, 20.0]

        proc.feed("1000,30.0,100.0")
        second = websocket.receive_json()
        assert [p["angle"] for p in second["points"]] == [30.0]


def test_websocket_without_buffer(checker, spawner):
    class NullConsumer:
        def add_point(self, point, is_new_scan) -> None:
            pass

    server = LidarServer(consumer=NullConsumer(), checker=checker, spawner=spawner)
    with TestClient(create_app(server)) as c:
        with c.websocket_connect("/stream") as websocket:
            data = websocket.receive_json()
            assert "No point buffer" in data["error"]


# =============================================================================
# Shutdown
# =============================================================================

def test_shutdown_stops_running_lidar(server, spawner):
    with TestClient(create_app(server)) as c:
        assert c.post("/start").status_code == 200

    assert spawner.last.killed is True
    assert server.is_running() is False
