"""
Tests for the HTTP API.
"""

from pathlib import Path

import pytest
import numpy as np
from fastapi.testclient import TestClient

from desert_painter.api.main import app, get_session
from desert_painter.config import Settings
from desert_painter.core.projector import look_at, perspective_matrix
from desert_painter.session import EditingSession


def top_down_camera(column_major=False):
    """Camera payload 30 units above the origin, looking straight down."""
    view = look_at((0, 30, 0), (0, 0, 0))
    projection = perspective_matrix(75, 1.0, 0.1, 1000)
    if column_major:
        view, projection = view.T, projection.T
    return {
        "view": view.ravel().tolist(),
        "projection": projection.ravel().tolist(),
        "width": 100,
        "height": 100,
        "column_major": column_major,
    }


class TestEditorAPI:
    """Test the editing endpoints against a fresh session."""

    @pytest.fixture
    def session(self, tmp_path):
        config = Settings(
            terrain_resolution=8,
            terrain_size=16.0,
            max_height=50.0,
            base_height=1.0,
            export_dir=str(tmp_path),
            export_prefix="api-test",
        )
        return EditingSession(config)

    @pytest.fixture
    def client(self, session):
        app.dependency_overrides[get_session] = lambda: session
        yield TestClient(app)
        app.dependency_overrides.clear()

    @pytest.fixture
    def terrain(self, client, session):
        response = client.post("/terrain/regenerate", json={"seed": 3})
        assert response.status_code == 200
        session.field.fill(lambda xs, zs: np.zeros((zs.size, xs.size)))
        return response.json()

    def test_root_and_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}
        assert client.get("/").json()["name"] == "Desert Painter API"

    def test_terrain_missing(self, client):
        """Test terrain reads before generation report a conflict."""
        assert client.get("/terrain").status_code == 409
        assert client.get("/terrain/heights").status_code == 409

    def test_export_missing(self, client, tmp_path):
        """Test exporting with no terrain is refused and writes nothing."""
        assert client.post("/export").status_code == 409
        assert list(tmp_path.iterdir()) == []

    def test_regenerate(self, client):
        """Test regeneration with a custom resolution."""
        response = client.post("/terrain/regenerate", json={"seed": 11, "resolution": 4})
        assert response.status_code == 200
        data = response.json()
        assert data["resolution"] == 4
        assert data["samples_per_side"] == 5
        assert data["seed"] == 11
        assert data["version"] == 1
        assert data["lowest"] <= data["highest"]

    def test_regenerate_rejects_bad_resolution(self, client):
        assert client.post("/terrain/regenerate", json={"resolution": 0}).status_code == 422

    def test_heights(self, client, terrain):
        """Test the full sample array and version short-circuit."""
        data = client.get("/terrain/heights").json()
        assert data["changed"] is True
        assert len(data["heights"]) == 81
        assert data["samples_per_side"] == 9

        unchanged = client.get("/terrain/heights", params={"since_version": data["version"]}).json()
        assert unchanged["changed"] is False
        assert unchanged["heights"] is None

    def test_layers(self, client):
        data = client.get("/terrain/layers").json()
        assert len(data) == 1
        # layer resolutions never drop below 16 segments
        assert data[0]["resolution"] == 16
        assert data[0]["lod_resolutions"] == [16, 8, 4]

    def test_brush_roundtrip(self, client):
        """Test brush updates are clamped and reported back."""
        assert client.get("/brush").json()["mode"] == "raise"

        response = client.put("/brush", json={"mode": "Smooth", "size": 400, "strength": -20})
        assert response.status_code == 200
        assert response.json() == {"mode": "smooth", "size": 50.0, "strength": 0.0, "falloff": 2.0}

    def test_brush_invalid_mode(self, client):
        """Test unknown modes are rejected and the brush is unchanged."""
        assert client.put("/brush", json={"mode": "excavate"}).status_code == 422
        assert client.get("/brush").json()["mode"] == "raise"

    def test_stroke(self, client, terrain, session):
        """Test a direct world-space stroke."""
        client.put("/brush", json={"size": 4, "strength": 100})
        response = client.post("/stroke", json={"x": 0.0, "z": 0.0})

        assert response.status_code == 200
        assert response.json()["applied"] is True
        assert response.json()["version"] == 2
        assert session.field.get(4, 4) == pytest.approx(1.0)

    def test_end_stroke_resets_flatten_target(self, client, terrain, session):
        client.put("/brush", json={"mode": "flatten"})
        client.post("/stroke", json={"x": 0.0, "z": 0.0})
        assert session._flatten_target == 0.0

        assert client.post("/stroke/end").json() == {"status": "ok"}
        assert session._flatten_target is None

    @pytest.mark.parametrize("column_major", [False, True])
    def test_tick(self, client, terrain, session, column_major):
        """Test a tick projects the pointer and strokes under it."""
        client.put("/brush", json={"size": 3, "strength": 100})
        payload = {"pointer": {"x": 50, "y": 50, "active": True}, "camera": top_down_camera(column_major)}

        response = client.post("/tick", json=payload)

        assert response.status_code == 200
        assert response.json()["applied"] is True
        assert session.field.get(4, 4) == pytest.approx(1.0)

    def test_tick_inactive(self, client, terrain):
        payload = {"pointer": {"x": 50, "y": 50, "active": False}, "camera": top_down_camera()}
        response = client.post("/tick", json=payload)
        assert response.json() == {"applied": False, "version": 1}

    def test_tick_rejects_short_matrix(self, client, terrain):
        camera = top_down_camera()
        camera["view"] = camera["view"][:12]
        response = client.post("/tick", json={"pointer": {"x": 0, "y": 0, "active": True}, "camera": camera})
        assert response.status_code == 422

    def test_tick_rejects_singular_camera(self, client, terrain):
        """Test a camera matrix that cannot be inverted is a client error."""
        camera = top_down_camera()
        camera["view"] = [0.0] * 16
        response = client.post("/tick", json={"pointer": {"x": 50, "y": 50, "active": True}, "camera": camera})
        assert response.status_code == 422
        assert client.get("/terrain").json()["version"] == 1

    def test_non_finite_brush_rejected(self, client, terrain):
        """Test NaN never reaches the brush, so later strokes still work."""
        response = client.put("/brush", content='{"size": NaN}', headers={"Content-Type": "application/json"})
        assert response.status_code == 422
        assert client.get("/brush").json()["size"] == 10.0
        assert client.post("/stroke", json={"x": 0.0, "z": 0.0}).status_code == 200

    def test_non_finite_stroke_rejected(self, client, terrain):
        response = client.post("/stroke", content='{"x": NaN, "z": 0.0}', headers={"Content-Type": "application/json"})
        assert response.status_code == 422

    def test_regenerate_rejects_negative_seed(self, client):
        assert client.post("/terrain/regenerate", json={"seed": -1}).status_code == 422

    def test_export(self, client, terrain, tmp_path):
        """Test export writes a PNG into the export directory."""
        response = client.post("/export")
        assert response.status_code == 200
        data = response.json()
        assert data["filename"].startswith("api-test-")
        assert Path(data["path"]).parent == tmp_path
        assert Path(data["path"]).exists()
