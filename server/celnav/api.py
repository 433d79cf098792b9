# server/celnav/api.py
from fastapi import APIRouter, Query
from typing import List, Optional
import logging
import time

from .schemas import (
    Position, CorrectionSettingsIn, BodyPositionOut, SkyBodyOut, SkyResponse,
    RecommendationOut, RecommendationsResponse, IdentificationOut, IdentifyResponse,
    CorrectionRequest, CorrectionStepOut, CorrectionResponse,
    ObservationStartRequest, SightRequest, SightOut, AverageOut, ObservationOut,
    ObservationsResponse, ReductionRequest, LopOut, LopIntersectRequest, LopFixRequest,
    FixOut, DrInitRequest, DrCourseRequest, DrFixRequest, SetAndDriftOut, DrStateOut,
    DrPositionOut, NoonLatitudeRequest, PolarisLatitudeRequest, LatitudeOut,
    NoonLongitudeRequest, LongitudeOut, SunCompassRequest, SunCompassOut,
)
from .config import AppConfig
from .emergency import meridian_passage_longitude, noon_sight_latitude, polaris_latitude, sun_compass
from .ephemeris.bodies import BodyPosition, resolve_body
from .ephemeris.compute import get_body_position
from .errors import (
    NavigationError, NotFound, NoIntersection, ErrorHandler, bad_request, body_not_found, not_found,
    unprocessable,
)
from .horizon import SkyBody, identify_bodies, recommended_bodies, sun_altitude, visible_bodies
from .models import Fix, FixKind, GeoPosition
from .obs.logging import StructuredLogger, TimedOperation
from .obs.metrics import metrics
from .reckoning.dead_reckoning import DeadReckoning
from .sight.corrections import CorrectionSettings, correct_altitude
from .sight.lop import LineOfPosition, LopStore, intersect_lops, least_squares_fix
from .sight.observation import Observation, ObservationSession
from .sight.reduction import SightReducer
from .util.dates import format_utc, parse_utc, utc_now

# Structured logger for business operations
business_logger = StructuredLogger(__name__)
logger = logging.getLogger(__name__)

router = APIRouter()

# Global state - will be injected in main.py
CONFIG: AppConfig = None
OBSERVATIONS: ObservationSession = None
LOPS: LopStore = None
DR: DeadReckoning = None
REDUCER: SightReducer = None


def _parse_time(utc: Optional[str]):
    if not utc:
        return utc_now()
    try:
        return parse_utc(utc)
    except ValueError as e:
        bad_request(
            "INPUT.INVALID",
            "Invalid UTC datetime format",
            str(e),
            "Use ISO 8601 format with Z suffix, e.g., '2024-03-15T12:00:00Z'"
        )


def _geo(position: GeoPosition) -> Position:
    return Position(lat=position.lat, lon=position.lon)


def _settings(override: Optional[CorrectionSettingsIn]) -> CorrectionSettings:
    base = CONFIG.corrections.model_dump()
    if override is not None:
        base.update(override.model_dump(exclude_none=True))
    try:
        return CorrectionSettings(
            index_error=base["index_error_arcmin"],
            height_of_eye_ft=base["height_of_eye_ft"],
            temperature_c=base["temperature_c"],
            pressure_mb=base["pressure_mb"],
            limb=base["limb"],
        )
    except NavigationError as e:
        ErrorHandler.handle_navigation_error(e)


def _body_out(position: BodyPosition, when) -> BodyPositionOut:
    return BodyPositionOut(
        name=position.body.name,
        kind=position.body.kind.value,
        utc=format_utc(when),
        gha_deg=position.gha,
        dec_deg=position.dec,
        ra_deg=position.ra,
        distance=position.distance,
        semi_diameter_arcmin=position.semi_diameter,
        horizontal_parallax_arcmin=position.horizontal_parallax,
        magnitude=position.magnitude,
        equation_of_time_min=position.equation_of_time,
        illuminated_fraction=position.illuminated_fraction,
        elongation_deg=position.elongation,
    )


def _sky_out(body: SkyBody) -> SkyBodyOut:
    return SkyBodyOut(
        name=body.name,
        kind=body.position.body.kind.value,
        altitude_deg=body.altitude,
        azimuth_deg=body.azimuth,
        magnitude=body.position.magnitude,
    )


def _observation_out(observation: Observation) -> ObservationOut:
    average = None
    if observation.average is not None:
        average = AverageOut(
            observed_altitude=observation.average.observed_altitude,
            utc=format_utc(observation.average.time),
            count=observation.average.count,
            std_dev_arcmin=observation.average.std_dev_arcmin,
            gha_deg=observation.average.body_position.gha,
            dec_deg=observation.average.body_position.dec,
        )
    return ObservationOut(
        id=observation.observation_id,
        body=observation.body.name,
        status=observation.status.value,
        started_at=format_utc(observation.started_at),
        sights=[
            SightOut(
                utc=format_utc(s.time),
                sextant_altitude=s.sextant_altitude,
                observed_altitude=s.observed_altitude,
                corrections=s.corrections.as_dict(),
                gha_deg=s.body_position.gha,
                dec_deg=s.body_position.dec,
            )
            for s in observation.sights
        ],
        average=average,
    )


def _lop_out(lop: LineOfPosition) -> LopOut:
    r = lop.reduction
    return LopOut(
        id=lop.lop_id,
        body=r.body,
        utc=format_utc(r.time),
        assumed_position=_geo(r.assumed_position),
        lha_deg=r.lha,
        computed_altitude=r.computed_altitude,
        azimuth_deg=r.azimuth,
        observed_altitude=r.observed_altitude,
        intercept_nm=r.intercept,
        direction=r.direction,
        intercept_point=_geo(lop.intercept_point),
        start=_geo(lop.start),
        end=_geo(lop.end),
    )


def _fix_out(fix: Fix, **extra) -> FixOut:
    return FixOut(
        position=_geo(fix.position),
        kind=fix.kind.value,
        quality=fix.quality,
        crossing_angle_deg=fix.crossing_angle,
        **extra
    )


def _no_intersection(result: NoIntersection, method: str):
    metrics.record_fix(method, None)
    metrics.record_error(result.code)
    unprocessable(result.code, "No intersection", result.reason,
                  "Choose lines of position from bodies with well-separated azimuths.")


# ==================== EPHEMERIS & SKY ====================

@router.get("/v1/bodies/{name}", response_model=BodyPositionOut)
async def body_position(name: str, utc: Optional[str] = None):
    """
    GHA, declination, semi-diameter and horizontal parallax of a body.
    """
    when = _parse_time(utc)
    position = get_body_position(name, when)
    if isinstance(position, NotFound):
        metrics.record_error(position.code)
        body_not_found(position)
    return _body_out(position, when)


@router.get("/v1/sky", response_model=SkyResponse)
async def sky(
    lat: float = Query(..., ge=-90, le=90),
    lon: float = Query(..., ge=-180, le=180),
    utc: Optional[str] = None,
    min_altitude: Optional[float] = Query(None, ge=-90, le=90),
):
    """
    Bodies above a minimum altitude for an observer.
    """
    when = _parse_time(utc)
    observer = GeoPosition(lat, lon)
    bodies = visible_bodies(observer, when, min_altitude=min_altitude, config=CONFIG.visibility)
    return SkyResponse(
        utc=format_utc(when),
        observer=_geo(observer),
        sun_altitude_deg=sun_altitude(observer, when),
        bodies=[_sky_out(b) for b in bodies],
    )


@router.get("/v1/sky/recommended", response_model=RecommendationsResponse)
async def sky_recommended(
    lat: float = Query(..., ge=-90, le=90),
    lon: float = Query(..., ge=-180, le=180),
    utc: Optional[str] = None,
):
    """
    Up to three bodies with well-spread azimuths for a fix.
    """
    when = _parse_time(utc)
    observer = GeoPosition(lat, lon)
    picks = recommended_bodies(observer, when, config=CONFIG.visibility)
    return RecommendationsResponse(
        utc=format_utc(when),
        observer=_geo(observer),
        recommendations=[RecommendationOut(body=_sky_out(r.body), reason=r.reason) for r in picks],
    )


@router.get("/v1/sky/identify", response_model=IdentifyResponse)
async def sky_identify(
    lat: float = Query(..., ge=-90, le=90),
    lon: float = Query(..., ge=-180, le=180),
    altitude: float = Query(..., ge=-90, le=90),
    azimuth: float = Query(..., ge=0, lt=360),
    radius: float = Query(10.0, gt=0, le=90),
    utc: Optional[str] = None,
):
    """
    Bodies near a pointing direction, closest first.
    """
    when = _parse_time(utc)
    matches = identify_bodies(GeoPosition(lat, lon), when, altitude, azimuth, radius,
                              config=CONFIG.visibility)
    return IdentifyResponse(
        utc=format_utc(when),
        matches=[IdentificationOut(body=_sky_out(m.body), distance_deg=m.distance) for m in matches],
    )


# ==================== CORRECTIONS & OBSERVATIONS ====================

@router.post("/v1/corrections", response_model=CorrectionResponse)
async def corrections(req: CorrectionRequest):
    """
    Itemized sextant altitude corrections (Hs -> Ho).
    """
    when = _parse_time(req.utc)
    position = get_body_position(req.body, when)
    if isinstance(position, NotFound):
        metrics.record_error(position.code)
        body_not_found(position)

    result = correct_altitude(req.sextant_altitude, position, _settings(req.settings))
    return CorrectionResponse(
        body=position.body.name,
        sextant_altitude=result.sextant_altitude,
        observed_altitude=result.observed_altitude,
        total_correction_arcmin=result.total_correction,
        steps=[
            CorrectionStepOut(name=s.name, correction_arcmin=s.correction, altitude_deg=s.altitude)
            for s in result.steps
        ],
    )


@router.post("/v1/observations", response_model=ObservationOut, status_code=201)
async def start_observation(req: ObservationStartRequest):
    """
    Start an observation of one body.
    """
    when = _parse_time(req.utc)
    try:
        observation = OBSERVATIONS.start(req.body, when, _settings(req.settings))
    except NavigationError as e:
        ErrorHandler.handle_navigation_error(e)
    if isinstance(observation, NotFound):
        metrics.record_error(observation.code)
        body_not_found(observation)

    metrics.record_observation("started")
    business_logger.observation_event("started", observation.observation_id, observation.body.name)
    return _observation_out(observation)


@router.post("/v1/observations/active/sights", response_model=SightOut, status_code=201)
async def record_sight(req: SightRequest):
    """
    Record a sextant sight in the active observation.
    """
    when = _parse_time(req.utc)
    try:
        sight = OBSERVATIONS.record_sight(req.sextant_altitude, when)
    except NavigationError as e:
        ErrorHandler.handle_navigation_error(e)

    active = OBSERVATIONS.active
    business_logger.observation_event("sight_recorded", active.observation_id, active.body.name,
                                      sight_count=len(active.sights))
    return SightOut(
        utc=format_utc(sight.time),
        sextant_altitude=sight.sextant_altitude,
        observed_altitude=sight.observed_altitude,
        corrections=sight.corrections.as_dict(),
        gha_deg=sight.body_position.gha,
        dec_deg=sight.body_position.dec,
    )


@router.post("/v1/observations/active/complete", response_model=ObservationOut)
async def complete_observation():
    """
    Complete the active observation, averaging its sights.
    """
    try:
        observation = OBSERVATIONS.complete()
    except NavigationError as e:
        ErrorHandler.handle_navigation_error(e)

    metrics.record_observation("completed")
    business_logger.observation_event("completed", observation.observation_id, observation.body.name,
                                      sight_count=len(observation.sights))
    return _observation_out(observation)


@router.delete("/v1/observations/active", response_model=ObservationOut)
async def cancel_observation():
    """
    Discard the active observation.
    """
    try:
        observation = OBSERVATIONS.cancel()
    except NavigationError as e:
        ErrorHandler.handle_navigation_error(e)

    metrics.record_observation("cancelled")
    business_logger.observation_event("cancelled", observation.observation_id, observation.body.name,
                                      sight_count=len(observation.sights))
    return _observation_out(observation)


@router.get("/v1/observations", response_model=ObservationsResponse)
async def list_observations():
    active = OBSERVATIONS.active
    return ObservationsResponse(
        active=_observation_out(active) if active is not None else None,
        log=[_observation_out(o) for o in OBSERVATIONS.log],
    )


# ==================== SIGHT REDUCTION & LOPS ====================

@router.post("/v1/reductions", response_model=LopOut, status_code=201)
async def reduce(req: ReductionRequest):
    """
    Reduce a sight and store the resulting line of position.

    Without an assumed position, the current dead-reckoning position is used.
    """
    when = _parse_time(req.utc)
    assumed = GeoPosition(req.assumed_position.lat, req.assumed_position.lon) if req.assumed_position else None

    start_time = time.perf_counter()
    try:
        reduction = REDUCER.reduce(req.body, when, req.observed_altitude, assumed)
    except NavigationError as e:
        ErrorHandler.handle_navigation_error(e)
    if isinstance(reduction, NotFound):
        metrics.record_error(reduction.code)
        body_not_found(reduction)

    lop = LOPS.add_reduction(reduction)
    duration_ms = (time.perf_counter() - start_time) * 1000

    body_kind = resolve_body(reduction.body).kind.value
    metrics.record_sight_reduction(body_kind, reduction.intercept)
    business_logger.sight_reduced(reduction.body, reduction.intercept, reduction.azimuth,
                                  duration_ms, assumed_from_provider=assumed is None)
    return _lop_out(lop)


@router.get("/v1/lops", response_model=List[LopOut])
async def list_lops():
    return [_lop_out(lop) for lop in LOPS.list()]


@router.delete("/v1/lops/{lop_id}", status_code=204)
async def delete_lop(lop_id: int):
    if not LOPS.delete(lop_id):
        not_found("LOP.NOT_FOUND", "Line of position not found", f"No LOP with id {lop_id}",
                  "List stored LOPs with GET /v1/lops.")


@router.delete("/v1/lops")
async def clear_lops():
    return {"deleted": LOPS.clear()}


def _stored_lop(lop_id: int) -> LineOfPosition:
    lop = LOPS.get(lop_id)
    if lop is None:
        not_found("LOP.NOT_FOUND", "Line of position not found", f"No LOP with id {lop_id}",
                  "List stored LOPs with GET /v1/lops.")
    return lop


@router.post("/v1/lops/intersect", response_model=FixOut)
async def intersect(req: LopIntersectRequest):
    """
    Cross two stored LOPs.
    """
    first = _stored_lop(req.first_id)
    second = _stored_lop(req.second_id)

    with TimedOperation(business_logger, "lop_intersection", lop_ids=[req.first_id, req.second_id]) as op:
        result = intersect_lops(first, second, CONFIG.reduction)
    if isinstance(result, NoIntersection):
        _no_intersection(result, "intersection")

    metrics.record_fix("intersection", result.quality)
    business_logger.fix_computed("intersection", 2, result.quality, op.duration_ms)
    return _fix_out(result, lop_count=2)


@router.post("/v1/lops/fix", response_model=FixOut)
async def lops_fix(req: Optional[LopFixRequest] = None):
    """
    Least-squares fix from stored LOPs (all of them by default).
    """
    if req is not None and req.ids:
        lops = [_stored_lop(i) for i in req.ids]
    else:
        lops = LOPS.list()

    with TimedOperation(business_logger, "least_squares_fix", lop_count=len(lops)) as op:
        result = least_squares_fix(lops, CONFIG.reduction)
    if isinstance(result, NoIntersection):
        _no_intersection(result, "least_squares")

    metrics.record_fix("least_squares", result.fix.quality)
    business_logger.fix_computed("least_squares", result.lop_count, result.fix.quality,
                                 op.duration_ms, result.rms_residual_nm)
    return _fix_out(result.fix, rms_residual_nm=result.rms_residual_nm,
                    iterations=result.iterations, lop_count=result.lop_count)


# ==================== DEAD RECKONING ====================

def _dr_state_out() -> DrStateOut:
    state = DR.state()
    sd = state.set_and_drift
    return DrStateOut(
        fix_position=_geo(state.fix_position) if state.fix_position else None,
        fix_utc=format_utc(state.fix_time) if state.fix_time else None,
        fix_kind=state.fix_kind.value if state.fix_kind else None,
        course=state.course,
        speed=state.speed,
        set_and_drift=SetAndDriftOut(
            set_deg=sd.set, drift_kn=sd.drift, elapsed_hours=sd.elapsed_hours, error_nm=sd.error_nm
        ) if sd else None,
    )


@router.post("/v1/dr/init", response_model=DrStateOut)
async def dr_init(req: DrInitRequest):
    when = _parse_time(req.utc)
    try:
        DR.initialize(GeoPosition(req.position.lat, req.position.lon), when,
                      req.course, req.speed, FixKind(req.kind))
    except NavigationError as e:
        ErrorHandler.handle_navigation_error(e)
    business_logger.dead_reckoning_event("initialized", {"course": req.course, "speed": req.speed})
    return _dr_state_out()


@router.put("/v1/dr/course", response_model=DrStateOut)
async def dr_course(req: DrCourseRequest):
    when = _parse_time(req.utc)
    try:
        DR.set_course_speed(req.course, req.speed, when)
    except NavigationError as e:
        ErrorHandler.handle_navigation_error(e)
    business_logger.dead_reckoning_event("course_changed", {"course": req.course, "speed": req.speed})
    return _dr_state_out()


@router.get("/v1/dr/position", response_model=DrPositionOut)
async def dr_position(utc: Optional[str] = None):
    when = _parse_time(utc)
    try:
        position = DR.calculate_position(when)
    except NavigationError as e:
        ErrorHandler.handle_navigation_error(e)
    return DrPositionOut(utc=format_utc(when), position=_geo(position))


@router.get("/v1/dr/estimated", response_model=DrPositionOut)
async def dr_estimated(utc: Optional[str] = None):
    when = _parse_time(utc)
    try:
        position = DR.estimated_position(when)
    except NavigationError as e:
        ErrorHandler.handle_navigation_error(e)
    return DrPositionOut(utc=format_utc(when), position=_geo(position), estimated=True)


@router.post("/v1/dr/fix", response_model=DrStateOut)
async def dr_fix(req: DrFixRequest):
    when = _parse_time(req.utc)
    try:
        computed = DR.update_fix(GeoPosition(req.position.lat, req.position.lon), when, FixKind(req.kind))
    except NavigationError as e:
        ErrorHandler.handle_navigation_error(e)

    metrics.record_dr_fix(req.kind)
    details = {"kind": req.kind}
    if computed is not None:
        details.update({"set": round(computed.set, 1), "drift_kn": round(computed.drift, 2)})
    business_logger.dead_reckoning_event("fix_applied", details)
    return _dr_state_out()


@router.delete("/v1/dr", response_model=DrStateOut)
async def dr_clear():
    DR.clear()
    business_logger.dead_reckoning_event("cleared")
    return _dr_state_out()


# ==================== EMERGENCY METHODS ====================

@router.post("/v1/emergency/noon-latitude", response_model=LatitudeOut)
async def emergency_noon_latitude(req: NoonLatitudeRequest):
    when = _parse_time(req.utc) if req.utc else None
    try:
        latitude = noon_sight_latitude(req.observed_altitude, req.declination, req.bearing, when)
    except NavigationError as e:
        ErrorHandler.handle_navigation_error(e)
    return LatitudeOut(latitude=latitude)


@router.post("/v1/emergency/polaris-latitude", response_model=LatitudeOut)
async def emergency_polaris_latitude(req: PolarisLatitudeRequest):
    when = _parse_time(req.utc) if req.utc else None
    result = polaris_latitude(req.observed_altitude, when, req.longitude)
    return LatitudeOut(latitude=result.latitude, correction_deg=result.correction)


@router.post("/v1/emergency/noon-longitude", response_model=LongitudeOut)
async def emergency_noon_longitude(req: NoonLongitudeRequest):
    return LongitudeOut(longitude=meridian_passage_longitude(_parse_time(req.utc)))


@router.post("/v1/emergency/sun-compass", response_model=SunCompassOut)
async def emergency_sun_compass(req: SunCompassRequest):
    try:
        result = sun_compass(req.measured_bearing, _parse_time(req.utc),
                             GeoPosition(req.position.lat, req.position.lon), req.compass_heading)
    except NavigationError as e:
        ErrorHandler.handle_navigation_error(e)
    return SunCompassOut(
        sun_azimuth=result.sun_azimuth,
        sun_altitude=result.sun_altitude,
        north_relative_bearing=result.north_relative_bearing,
        true_heading=result.true_heading,
        deviation=result.deviation,
    )
