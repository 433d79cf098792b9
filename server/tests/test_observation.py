"""
Tests for the observation lifecycle.
"""

import math
import pytest
from datetime import timedelta

from celnav.ephemeris.bodies import Body
from celnav.ephemeris.compute import get_body_position
from celnav.errors import InputError, InvalidStateError, NotFound
from celnav.sight.corrections import CorrectionSettings, Limb, correct_altitude
from celnav.sight.observation import (
    ObservationSession, ObservationStatus, Sight, average_sights,
)


def make_sight(when, observed_altitude):
    position = get_body_position("Vega", when)
    return Sight(
        time=when,
        sextant_altitude=observed_altitude,
        corrections=correct_altitude(observed_altitude),
        observed_altitude=observed_altitude,
        body_position=position,
    )


class TestAverageSights:
    """Tests for averaging altitudes and times."""

    def test_mean_and_population_std_dev(self, sight_time):
        sights = tuple(
            make_sight(sight_time + timedelta(seconds=60 * i), alt)
            for i, alt in enumerate((30.0, 30.1, 30.2))
        )
        average = average_sights(Body.of_star("Vega"), sights)

        assert average.count == 3
        assert average.observed_altitude == pytest.approx(30.1)
        assert average.time == sight_time + timedelta(seconds=60)
        assert average.std_dev_arcmin == pytest.approx(math.sqrt(0.02 / 3) * 60.0)

    def test_single_sight_has_zero_spread(self, sight_time):
        average = average_sights(Body.of_star("Vega"), (make_sight(sight_time, 42.0),))
        assert average.std_dev_arcmin == 0.0
        assert average.time == sight_time

    def test_body_recomputed_at_mean_time(self, sight_time):
        sights = (make_sight(sight_time, 30.0), make_sight(sight_time + timedelta(minutes=10), 31.0))
        average = average_sights(Body.of_star("Vega"), sights)
        expected = get_body_position("Vega", sight_time + timedelta(minutes=5))
        assert average.body_position.gha == pytest.approx(expected.gha)

    def test_no_sights(self):
        with pytest.raises(InputError):
            average_sights(Body.sun(), ())


class TestObservationSession:
    """Tests for start/record/complete/cancel transitions."""

    def test_full_lifecycle(self, sight_time):
        session = ObservationSession()
        observation = session.start("Sun", sight_time)
        assert observation.status is ObservationStatus.ACTIVE
        assert session.active.observation_id == observation.observation_id

        for i, hs in enumerate((35.10, 35.15, 35.20)):
            sight = session.record_sight(hs, sight_time + timedelta(seconds=30 * i))
            assert sight.corrections.observed_altitude == sight.observed_altitude

        assert len(session.active.sights) == 3
        completed = session.complete()

        assert completed.status is ObservationStatus.COMPLETE
        assert completed.average.count == 3
        assert completed.average.time == sight_time + timedelta(seconds=30)
        assert session.active is None
        assert session.log == [completed]

    def test_ids_increase(self, sight_time):
        session = ObservationSession()
        first = session.start("Vega", sight_time)
        session.cancel()
        second = session.start("Vega", sight_time)
        assert second.observation_id == first.observation_id + 1

    def test_start_twice_rejected(self, sight_time):
        session = ObservationSession()
        first = session.start("Sun", sight_time)
        with pytest.raises(InvalidStateError) as exc_info:
            session.start("Moon", sight_time)
        assert exc_info.value.code == "STATE.OBSERVATION_ACTIVE"
        # the rejected command left the session untouched
        assert session.active == first

    def test_unknown_body(self, sight_time):
        session = ObservationSession()
        result = session.start("Nemesis", sight_time)
        assert isinstance(result, NotFound)
        assert session.active is None

    def test_record_without_active(self, sight_time):
        session = ObservationSession()
        with pytest.raises(InvalidStateError) as exc_info:
            session.record_sight(30.0, sight_time)
        assert exc_info.value.code == "STATE.NO_ACTIVE_OBSERVATION"

    def test_complete_without_active(self):
        with pytest.raises(InvalidStateError) as exc_info:
            ObservationSession().complete()
        assert exc_info.value.code == "STATE.NO_ACTIVE_OBSERVATION"

    def test_complete_without_sights(self, sight_time):
        session = ObservationSession()
        session.start("Sun", sight_time)
        with pytest.raises(InvalidStateError) as exc_info:
            session.complete()
        assert exc_info.value.code == "STATE.NO_SIGHTS"
        assert session.active is not None
        assert session.log == []

    def test_cancel_leaves_log_untouched(self, sight_time):
        session = ObservationSession()
        session.start("Sun", sight_time)
        session.record_sight(30.0, sight_time)
        session.complete()

        session.start("Moon", sight_time)
        session.record_sight(25.0, sight_time)
        cancelled = session.cancel()

        assert cancelled.status is ObservationStatus.CANCELLED
        assert session.active is None
        assert len(session.log) == 1
        assert session.log[0].body == Body.sun()

    def test_cancel_without_active(self):
        with pytest.raises(InvalidStateError):
            ObservationSession().cancel()

    def test_per_observation_settings(self, sight_time):
        session = ObservationSession(CorrectionSettings(height_of_eye_ft=0.0))
        session.start("Sun", sight_time, settings=CorrectionSettings(height_of_eye_ft=16.0, limb=Limb.UPPER))
        sight = session.record_sight(30.0, sight_time)
        assert sight.corrections.get("dip").correction == pytest.approx(-0.97 * 4.0)
        assert sight.corrections.get("semi_diameter").correction < 0.0

    def test_default_settings_used(self, sight_time):
        session = ObservationSession(CorrectionSettings(height_of_eye_ft=0.0))
        session.start("Vega", sight_time)
        sight = session.record_sight(30.0, sight_time)
        assert sight.corrections.get("dip").correction == 0.0

    def test_clear_log(self, sight_time):
        session = ObservationSession()
        session.start("Vega", sight_time)
        session.record_sight(30.0, sight_time)
        session.complete()
        session.clear_log()
        assert session.log == []

    def test_log_is_a_copy(self, sight_time):
        session = ObservationSession()
        session.log.append("junk")
        assert session.log == []
