# server/celnav/schemas.py
from typing import List, Optional, Literal, Dict
from pydantic import BaseModel, Field, field_validator

LimbType = Literal["lower", "upper", "center"]
FixKindType = Literal["gps", "celestial", "manual", "running_fix", "dr"]
BearingType = Literal["north", "south"]


class Position(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


class CorrectionSettingsIn(BaseModel):
    index_error_arcmin: Optional[float] = None
    height_of_eye_ft: Optional[float] = Field(None, ge=0, le=200)
    temperature_c: Optional[float] = Field(None, ge=-60, le=60)
    pressure_mb: Optional[float] = Field(None, ge=800, le=1100)
    limb: Optional[LimbType] = None


class BodyPositionOut(BaseModel):
    name: str
    kind: str
    utc: str
    gha_deg: float
    dec_deg: float
    ra_deg: float
    distance: Optional[float] = None
    semi_diameter_arcmin: float
    horizontal_parallax_arcmin: float
    magnitude: Optional[float] = None
    equation_of_time_min: Optional[float] = None
    illuminated_fraction: Optional[float] = None
    elongation_deg: Optional[float] = None


class SkyBodyOut(BaseModel):
    name: str
    kind: str
    altitude_deg: float
    azimuth_deg: float
    magnitude: Optional[float] = None


class SkyResponse(BaseModel):
    utc: str
    observer: Position
    sun_altitude_deg: float
    bodies: List[SkyBodyOut]


class RecommendationOut(BaseModel):
    body: SkyBodyOut
    reason: str


class RecommendationsResponse(BaseModel):
    utc: str
    observer: Position
    recommendations: List[RecommendationOut]


class IdentificationOut(BaseModel):
    body: SkyBodyOut
    distance_deg: float


class IdentifyResponse(BaseModel):
    utc: str
    matches: List[IdentificationOut]


class CorrectionRequest(BaseModel):
    body: str
    utc: str
    sextant_altitude: float = Field(..., ge=-5, le=90)
    settings: Optional[CorrectionSettingsIn] = None


class CorrectionStepOut(BaseModel):
    name: str
    correction_arcmin: float
    altitude_deg: float


class CorrectionResponse(BaseModel):
    body: str
    sextant_altitude: float
    observed_altitude: float
    total_correction_arcmin: float
    steps: List[CorrectionStepOut]


class ObservationStartRequest(BaseModel):
    body: str
    utc: Optional[str] = None
    settings: Optional[CorrectionSettingsIn] = None


class SightRequest(BaseModel):
    sextant_altitude: float = Field(..., ge=-5, le=90)
    utc: str


class SightOut(BaseModel):
    utc: str
    sextant_altitude: float
    observed_altitude: float
    corrections: Dict[str, float]
    gha_deg: float
    dec_deg: float


class AverageOut(BaseModel):
    observed_altitude: float
    utc: str
    count: int
    std_dev_arcmin: float
    gha_deg: float
    dec_deg: float


class ObservationOut(BaseModel):
    id: int
    body: str
    status: str
    started_at: str
    sights: List[SightOut]
    average: Optional[AverageOut] = None


class ObservationsResponse(BaseModel):
    active: Optional[ObservationOut] = None
    log: List[ObservationOut]


class ReductionRequest(BaseModel):
    body: str
    utc: str
    observed_altitude: float = Field(..., ge=-5, le=90)
    assumed_position: Optional[Position] = None


class LopOut(BaseModel):
    id: int
    body: str
    utc: str
    assumed_position: Position
    lha_deg: float
    computed_altitude: float
    azimuth_deg: float
    observed_altitude: float
    intercept_nm: float
    direction: str
    intercept_point: Position
    start: Position
    end: Position


class LopIntersectRequest(BaseModel):
    first_id: int
    second_id: int


class LopFixRequest(BaseModel):
    ids: Optional[List[int]] = None  # default: all stored LOPs


class FixOut(BaseModel):
    position: Position
    kind: FixKindType
    quality: Optional[str] = None
    crossing_angle_deg: Optional[float] = None
    rms_residual_nm: Optional[float] = None
    iterations: Optional[int] = None
    lop_count: Optional[int] = None


class DrInitRequest(BaseModel):
    position: Position
    utc: str
    course: float = Field(0.0, ge=0, lt=360)
    speed: float = Field(0.0, ge=0)
    kind: FixKindType = "manual"


class DrCourseRequest(BaseModel):
    course: float = Field(..., ge=0, lt=360)
    speed: float = Field(..., ge=0)
    utc: str


class DrFixRequest(BaseModel):
    position: Position
    utc: str
    kind: FixKindType = "celestial"


class SetAndDriftOut(BaseModel):
    set_deg: float
    drift_kn: float
    elapsed_hours: float
    error_nm: float


class DrStateOut(BaseModel):
    fix_position: Optional[Position] = None
    fix_utc: Optional[str] = None
    fix_kind: Optional[str] = None
    course: float
    speed: float
    set_and_drift: Optional[SetAndDriftOut] = None


class DrPositionOut(BaseModel):
    utc: str
    position: Position
    estimated: bool = False


class NoonLatitudeRequest(BaseModel):
    observed_altitude: float = Field(..., ge=0, le=90)
    declination: Optional[float] = Field(None, ge=-90, le=90)
    bearing: BearingType = "south"
    utc: Optional[str] = None


class PolarisLatitudeRequest(BaseModel):
    observed_altitude: float = Field(..., ge=-1, le=90)
    utc: Optional[str] = None
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class LatitudeOut(BaseModel):
    latitude: float
    correction_deg: float = 0.0


class NoonLongitudeRequest(BaseModel):
    utc: str


class LongitudeOut(BaseModel):
    longitude: float


class SunCompassRequest(BaseModel):
    measured_bearing: float = Field(..., ge=0, lt=360)
    utc: str
    position: Position
    compass_heading: Optional[float] = Field(None, ge=0, lt=360)


class SunCompassOut(BaseModel):
    sun_azimuth: float
    sun_altitude: float
    north_relative_bearing: float
    true_heading: float
    deviation: Optional[float] = None


class HealthOut(BaseModel):
    status: str
    version: str
    star_count: int
    uptime_seconds: float

    @field_validator('status')
    @classmethod
    def validate_status(cls, v):
        if v not in ("ok", "degraded"):
            raise ValueError(f"Invalid status: {v}")
        return v
