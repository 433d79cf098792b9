"""
HTTP tests for the navigation API, run against the application with its
lifespan executed.
"""

import pytest
from datetime import datetime, timezone

from celnav.ephemeris.sun import get_sun_position
from celnav.ephemeris.timescale import normalize_longitude

NIGHT = "2024-03-16T00:00:00Z"
OBSERVER = {"lat": 35.0, "lon": -40.0}


class TestService:
    """Tests for health, metrics and request handling."""

    def test_healthz(self, client):
        response = client.get("/healthz")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["star_count"] == 58
        assert data["uptime_seconds"] >= 0

    def test_metrics(self, client):
        client.get("/healthz")
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "text/plain" in response.headers["content-type"]
        assert "celnav_requests_total" in response.text

    def test_request_id_echoed(self, client):
        response = client.get("/healthz", headers={"x-request-id": "abc-123"})
        assert response.headers["X-Request-Id"] == "abc-123"
        assert response.headers["Cache-Control"] == "no-store"

    def test_request_id_generated(self, client):
        assert client.get("/healthz").headers["X-Request-Id"]


class TestEphemerisEndpoints:
    """Tests for body positions and sky queries."""

    def test_body_position(self, client):
        response = client.get("/v1/bodies/Sun", params={"utc": "2000-01-01T12:00:00Z"})
        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Sun"
        assert data["kind"] == "sun"
        assert data["dec_deg"] == pytest.approx(-23.032, abs=1 / 60)
        assert data["equation_of_time_min"] < 0

    def test_unknown_body(self, client):
        response = client.get("/v1/bodies/Krypton", params={"utc": NIGHT})
        assert response.status_code == 404
        data = response.json()
        assert data["code"] == "BODY.NOT_FOUND"
        assert "Krypton" in data["detail"]
        assert data["tip"]

    def test_time_without_indicator(self, client):
        response = client.get("/v1/bodies/Sun", params={"utc": "2024-03-15T12:00:00"})
        assert response.status_code == 400
        assert response.json()["code"] == "INPUT.INVALID"

    def test_sky(self, client):
        response = client.get("/v1/sky", params={**OBSERVER, "utc": NIGHT, "min_altitude": 15})
        assert response.status_code == 200
        data = response.json()
        assert data["sun_altitude_deg"] < -6
        altitudes = [b["altitude_deg"] for b in data["bodies"]]
        assert altitudes and all(a >= 15 for a in altitudes)
        assert altitudes == sorted(altitudes, reverse=True)

    def test_sky_requires_observer(self, client):
        assert client.get("/v1/sky", params={"utc": NIGHT}).status_code == 422

    def test_recommended(self, client):
        response = client.get("/v1/sky/recommended", params={**OBSERVER, "utc": NIGHT})
        assert response.status_code == 200
        picks = response.json()["recommendations"]
        assert 1 <= len(picks) <= 3
        assert all(p["reason"] for p in picks)

    def test_identify(self, client):
        params = {**OBSERVER, "utc": NIGHT, "altitude": 35.0, "azimuth": 0.0, "radius": 3.0}
        response = client.get("/v1/sky/identify", params=params)
        assert response.status_code == 200
        assert "Polaris" in [m["body"]["name"] for m in response.json()["matches"]]

    def test_identify_azimuth_range(self, client):
        params = {**OBSERVER, "utc": NIGHT, "altitude": 35.0, "azimuth": 360.0}
        assert client.get("/v1/sky/identify", params=params).status_code == 422


class TestCorrectionEndpoints:
    """Tests for corrections and the observation lifecycle."""

    def test_corrections(self, client):
        response = client.post("/v1/corrections", json={
            "body": "Sun", "utc": "2024-03-15T15:00:00Z", "sextant_altitude": 35.0,
            "settings": {"height_of_eye_ft": 9.0, "limb": "lower"},
        })
        assert response.status_code == 200
        data = response.json()
        assert [s["name"] for s in data["steps"]] == [
            "index_error", "dip", "refraction", "semi_diameter", "parallax"
        ]
        assert data["steps"][1]["correction_arcmin"] == pytest.approx(-2.91)
        total = sum(s["correction_arcmin"] for s in data["steps"])
        assert data["total_correction_arcmin"] == pytest.approx(total)

    def test_corrections_invalid_limb(self, client):
        response = client.post("/v1/corrections", json={
            "body": "Sun", "utc": NIGHT, "sextant_altitude": 35.0, "settings": {"limb": "middle"},
        })
        assert response.status_code == 422

    def test_observation_lifecycle(self, client):
        response = client.post("/v1/observations", json={"body": "Sun", "utc": "2024-03-15T15:00:00Z"})
        assert response.status_code == 201
        assert response.json()["status"] == "active"

        second = client.post("/v1/observations", json={"body": "Moon"})
        assert second.status_code == 409
        assert second.json()["code"] == "STATE.OBSERVATION_ACTIVE"

        for i, hs in enumerate((35.0, 35.05, 35.1)):
            sight = client.post("/v1/observations/active/sights", json={
                "sextant_altitude": hs, "utc": f"2024-03-15T15:0{i}:00Z",
            })
            assert sight.status_code == 201
            assert set(sight.json()["corrections"]) == {
                "index_error", "dip", "refraction", "semi_diameter", "parallax"
            }

        completed = client.post("/v1/observations/active/complete")
        assert completed.status_code == 200
        data = completed.json()
        assert data["status"] == "complete"
        assert data["average"]["count"] == 3
        assert data["average"]["utc"] == "2024-03-15T15:01:00Z"

        listing = client.get("/v1/observations").json()
        assert listing["active"] is None
        assert len(listing["log"]) == 1

    def test_complete_without_active(self, client):
        response = client.post("/v1/observations/active/complete")
        assert response.status_code == 409
        assert response.json()["code"] == "STATE.NO_ACTIVE_OBSERVATION"

    def test_complete_without_sights(self, client):
        client.post("/v1/observations", json={"body": "Vega", "utc": NIGHT})
        response = client.post("/v1/observations/active/complete")
        assert response.status_code == 409
        assert response.json()["code"] == "STATE.NO_SIGHTS"

    def test_cancel(self, client):
        client.post("/v1/observations", json={"body": "Vega", "utc": NIGHT})
        response = client.delete("/v1/observations/active")
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        listing = client.get("/v1/observations").json()
        assert listing["active"] is None
        assert listing["log"] == []

    def test_observation_unknown_body(self, client):
        response = client.post("/v1/observations", json={"body": "Vulcan"})
        assert response.status_code == 404


class TestReductionEndpoints:
    """Tests for sight reduction, LOP management and fixes."""

    def _reduce_at_observer(self, client, body):
        return client.post("/v1/reductions", json={
            "body": body["name"], "utc": NIGHT,
            "observed_altitude": body["altitude_deg"], "assumed_position": OBSERVER,
        })

    def test_reduction_needs_assumed_position(self, client):
        response = client.post("/v1/reductions", json={
            "body": "Sun", "utc": "2024-03-15T15:00:00Z", "observed_altitude": 30.0,
        })
        assert response.status_code == 409
        assert response.json()["code"] == "STATE.NO_ASSUMED_POSITION"

    def test_reduction_uses_dead_reckoning(self, client):
        client.post("/v1/dr/init", json={
            "position": {"lat": 40.0, "lon": -70.0}, "utc": "2024-03-15T15:00:00Z",
        })
        response = client.post("/v1/reductions", json={
            "body": "Sun", "utc": "2024-03-15T15:00:00Z", "observed_altitude": 30.0,
        })
        assert response.status_code == 201
        assert response.json()["assumed_position"] == {"lat": 40.0, "lon": -70.0}

    def test_reduction_unknown_body(self, client):
        response = client.post("/v1/reductions", json={
            "body": "Nibiru", "utc": NIGHT, "observed_altitude": 30.0, "assumed_position": OBSERVER,
        })
        assert response.status_code == 404

    def test_fix_from_two_stars(self, client):
        picks = client.get("/v1/sky/recommended", params={**OBSERVER, "utc": NIGHT}).json()["recommendations"]
        assert len(picks) >= 2

        first = self._reduce_at_observer(client, picks[0]["body"]).json()
        second = self._reduce_at_observer(client, picks[1]["body"]).json()
        assert (first["id"], second["id"]) == (1, 2)
        assert first["intercept_nm"] == pytest.approx(0.0, abs=1e-6)

        response = client.post("/v1/lops/intersect", json={"first_id": 1, "second_id": 2})
        assert response.status_code == 200
        fix = response.json()
        assert fix["kind"] == "celestial"
        assert fix["position"]["lat"] == pytest.approx(35.0, abs=1e-6)
        assert fix["position"]["lon"] == pytest.approx(-40.0, abs=1e-6)
        assert fix["crossing_angle_deg"] > 0

        response = client.post("/v1/lops/fix", json={})
        assert response.status_code == 200
        assert response.json()["lop_count"] == 2
        assert response.json()["rms_residual_nm"] == pytest.approx(0.0, abs=1e-3)

    def test_parallel_lops(self, client):
        body = {"name": "Vega", "altitude_deg": 30.0}
        self._reduce_at_observer(client, body)
        self._reduce_at_observer(client, body)
        response = client.post("/v1/lops/intersect", json={"first_id": 1, "second_id": 2})
        assert response.status_code == 422
        assert response.json()["code"] == "GEOMETRY.NO_INTERSECTION"

    def test_least_squares_needs_two(self, client):
        response = client.post("/v1/lops/fix", json={})
        assert response.status_code == 422

    def test_lop_management(self, client):
        for name in ("Vega", "Arcturus", "Capella"):
            self._reduce_at_observer(client, {"name": name, "altitude_deg": 30.0})
        assert [lop["id"] for lop in client.get("/v1/lops").json()] == [1, 2, 3]

        assert client.delete("/v1/lops/2").status_code == 204
        missing = client.delete("/v1/lops/2")
        assert missing.status_code == 404
        assert missing.json()["code"] == "LOP.NOT_FOUND"

        response = client.post("/v1/lops/intersect", json={"first_id": 1, "second_id": 2})
        assert response.status_code == 404

        assert client.delete("/v1/lops").json() == {"deleted": 2}
        assert client.get("/v1/lops").json() == []


class TestDeadReckoningEndpoints:
    """Tests for the dead-reckoning commands."""

    def test_position_without_fix(self, client):
        response = client.get("/v1/dr/position", params={"utc": NIGHT})
        assert response.status_code == 409
        assert response.json()["code"] == "STATE.NO_FIX"

    def test_dead_reckoning_flow(self, client):
        response = client.post("/v1/dr/init", json={
            "position": {"lat": 40.0, "lon": -70.0}, "utc": "2024-03-15T12:00:00Z",
            "course": 0.0, "speed": 6.0,
        })
        assert response.status_code == 200
        assert response.json()["fix_kind"] == "manual"

        position = client.get("/v1/dr/position", params={"utc": "2024-03-15T14:00:00Z"}).json()
        assert position["position"]["lat"] == pytest.approx(40.2)

        early = client.get("/v1/dr/position", params={"utc": "2024-03-15T11:00:00Z"})
        assert early.status_code == 409
        assert early.json()["code"] == "STATE.TIME_BEFORE_FIX"

        state = client.put("/v1/dr/course", json={
            "course": 90.0, "speed": 0.0, "utc": "2024-03-15T13:00:00Z",
        }).json()
        assert state["course"] == 90.0

        # the boat is found 1 nm further north than DR after two hours
        fix = client.post("/v1/dr/fix", json={
            "position": {"lat": 40.1 + 1 / 60, "lon": -70.0}, "utc": "2024-03-15T14:00:00Z",
        }).json()
        assert fix["fix_kind"] == "celestial"
        assert fix["set_and_drift"]["set_deg"] == pytest.approx(0.0, abs=1e-6)
        assert fix["set_and_drift"]["drift_kn"] == pytest.approx(0.5)

        estimated = client.get("/v1/dr/estimated", params={"utc": "2024-03-15T16:00:00Z"}).json()
        assert estimated["estimated"] is True
        assert estimated["position"]["lat"] == pytest.approx(40.1 + 2 / 60)

        cleared = client.delete("/v1/dr").json()
        assert cleared["fix_position"] is None

    def test_negative_speed_rejected(self, client):
        response = client.post("/v1/dr/init", json={
            "position": {"lat": 40.0, "lon": -70.0}, "utc": NIGHT, "speed": -1.0,
        })
        assert response.status_code == 422


class TestEmergencyEndpoints:
    """Tests for the manual navigation methods."""

    def test_noon_latitude(self, client):
        response = client.post("/v1/emergency/noon-latitude", json={
            "observed_altitude": 50.0, "declination": 10.0, "bearing": "south",
        })
        assert response.status_code == 200
        assert response.json()["latitude"] == pytest.approx(50.0)

    def test_noon_latitude_needs_declination_or_time(self, client):
        response = client.post("/v1/emergency/noon-latitude", json={"observed_altitude": 50.0})
        assert response.status_code == 400
        assert response.json()["code"] == "INPUT.INVALID"

    def test_polaris_latitude(self, client):
        response = client.post("/v1/emergency/polaris-latitude", json={
            "observed_altitude": 35.0, "utc": NIGHT, "longitude": -40.0,
        })
        data = response.json()
        assert abs(data["correction_deg"]) < 0.7
        assert data["latitude"] == pytest.approx(35.0 - data["correction_deg"])

    def test_noon_longitude(self, client):
        response = client.post("/v1/emergency/noon-longitude", json={"utc": "2024-03-15T12:09:00Z"})
        assert response.status_code == 200
        assert abs(response.json()["longitude"]) < 1.0

    def test_sun_compass(self, client):
        response = client.post("/v1/emergency/sun-compass", json={
            "measured_bearing": 30.0, "utc": "2024-03-15T15:00:00Z",
            "position": {"lat": 40.0, "lon": -70.0}, "compass_heading": 100.0,
        })
        assert response.status_code == 200
        data = response.json()
        assert data["sun_altitude"] > 0
        assert data["deviation"] is not None

    def test_sun_compass_at_zenith(self, client):
        sun = get_sun_position(datetime(2024, 3, 15, 15, 0, tzinfo=timezone.utc))
        response = client.post("/v1/emergency/sun-compass", json={
            "measured_bearing": 30.0, "utc": "2024-03-15T15:00:00Z",
            "position": {"lat": sun.dec, "lon": normalize_longitude(-sun.gha)},
        })
        assert response.status_code == 422
        assert response.json()["code"] == "GEOMETRY.SUN_AT_ZENITH"
