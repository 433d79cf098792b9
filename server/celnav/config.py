from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import List
import yaml
import os


class APIConfig(BaseModel):
    cors_origins: List[str] = []
    log_level: str = "INFO"
    json_logs: bool = True

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"Invalid log level: {v}. Must be one of {allowed}")
        return v.upper()


class CorrectionsConfig(BaseModel):
    index_error_arcmin: float = 0.0  # positive = on the arc
    height_of_eye_ft: float = 8.0
    temperature_c: float = 10.0
    pressure_mb: float = 1010.0
    limb: str = "lower"  # lower | upper | center

    @field_validator('height_of_eye_ft')
    @classmethod
    def validate_height(cls, v):
        if v < 0 or v > 200:
            raise ValueError("Height of eye must be between 0 and 200 ft")
        return v

    @field_validator('temperature_c')
    @classmethod
    def validate_temperature(cls, v):
        if v < -60 or v > 60:
            raise ValueError("Temperature must be between -60 and 60 °C")
        return v

    @field_validator('pressure_mb')
    @classmethod
    def validate_pressure(cls, v):
        if v < 800 or v > 1100:
            raise ValueError("Pressure must be between 800 and 1100 mb")
        return v

    @field_validator('limb')
    @classmethod
    def validate_limb(cls, v):
        allowed = ["lower", "upper", "center"]
        if v not in allowed:
            raise ValueError(f"Invalid limb: {v}. Must be one of {allowed}")
        return v


class ReductionConfig(BaseModel):
    lop_half_length_nm: float = 60.0
    round_assumed_position: bool = True
    good_fix_angle_deg: float = 30.0
    fair_fix_angle_deg: float = 15.0
    max_lops: int = 100

    @field_validator('max_lops')
    @classmethod
    def validate_max_lops(cls, v):
        if v < 2:
            raise ValueError("At least two stored LOPs are needed for a fix")
        return v

    @model_validator(mode='after')
    def validate_fix_angles(self):
        if not 0 < self.fair_fix_angle_deg < self.good_fix_angle_deg <= 90:
            raise ValueError("Fix angle thresholds must satisfy 0 < fair < good <= 90")
        return self


class VisibilityConfig(BaseModel):
    min_altitude_deg: float = 10.0
    twilight_sun_altitude_deg: float = -6.0
    recommend_count: int = 3
    min_azimuth_separation_deg: float = 30.0
    star_magnitude_limit: float = 2.0

    @field_validator('star_magnitude_limit')
    @classmethod
    def validate_mag_limit(cls, v):
        if v < -2.0 or v > 6.0:
            raise ValueError("Magnitude limit must be between -2.0 and 6.0")
        return v


class DeadReckoningConfig(BaseModel):
    position_log_size: int = 500

    @field_validator('position_log_size')
    @classmethod
    def validate_log_size(cls, v):
        if v < 1:
            raise ValueError("Position log size must be positive")
        return v


class InertialConfig(BaseModel):
    step_threshold_g: float = 1.15
    smoothing: float = 0.3  # first-order IIR coefficient
    window_size: int = 5
    min_step_interval_s: float = 0.25
    max_step_interval_s: float = 2.0
    step_length_m: float = 0.75
    min_step_length_m: float = 0.3
    max_step_length_m: float = 1.5
    gyro_weight: float = 0.98
    magnetic_declination_deg: float = 0.0  # east positive
    drift_rate: float = 0.05  # fraction of distance travelled
    full_degradation_m: float = 5000.0
    time_decay_minutes: float = 60.0
    min_confidence: float = 0.1
    history_size: int = 1000
    cadence_window: int = 10
    gyro_calibration_seconds: float = 5.0
    zupt_confidence_bonus: float = 0.02
    bias_adaptation_rate: float = 0.01

    @field_validator('window_size')
    @classmethod
    def validate_window(cls, v):
        if v < 3 or v % 2 == 0:
            raise ValueError("Step window must be odd and at least 3 samples")
        return v

    @field_validator('gyro_weight')
    @classmethod
    def validate_gyro_weight(cls, v):
        if v < 0.5 or v > 1.0:
            raise ValueError("Gyro weight must be between 0.5 and 1.0")
        return v

    @field_validator('min_confidence')
    @classmethod
    def validate_min_confidence(cls, v):
        if v <= 0 or v >= 1:
            raise ValueError("Minimum confidence must be strictly between 0 and 1")
        return v

    @field_validator('smoothing')
    @classmethod
    def validate_smoothing(cls, v):
        if v <= 0 or v > 1:
            raise ValueError("Smoothing coefficient must be in (0, 1]")
        return v

    @model_validator(mode='after')
    def validate_ranges(self):
        if self.min_step_interval_s >= self.max_step_interval_s:
            raise ValueError("Minimum step interval must be below the maximum")
        if not self.min_step_length_m <= self.step_length_m <= self.max_step_length_m:
            raise ValueError("Default step length must lie within the step-length bounds")
        return self


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")  # Prevent unexpected config keys

    api: APIConfig = Field(default_factory=APIConfig)
    corrections: CorrectionsConfig = Field(default_factory=CorrectionsConfig)
    reduction: ReductionConfig = Field(default_factory=ReductionConfig)
    visibility: VisibilityConfig = Field(default_factory=VisibilityConfig)
    dead_reckoning: DeadReckoningConfig = Field(default_factory=DeadReckoningConfig)
    inertial: InertialConfig = Field(default_factory=InertialConfig)


def load_config(path: str = "config.yaml") -> AppConfig:
    """Load configuration from YAML file with environment variable overrides."""
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        print(f"Warning: Config file {path} not found, using defaults")
        data = {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in config file {path}: {e}")

    env_overrides = {}

    # API overrides
    if "CELNAV_LOG_LEVEL" in os.environ:
        env_overrides.setdefault("api", {})["log_level"] = os.environ["CELNAV_LOG_LEVEL"]
    if "CELNAV_JSON_LOGS" in os.environ:
        env_overrides.setdefault("api", {})["json_logs"] = os.environ["CELNAV_JSON_LOGS"].lower() == "true"
    if "CELNAV_CORS_ORIGINS" in os.environ:
        env_overrides.setdefault("api", {})["cors_origins"] = os.environ["CELNAV_CORS_ORIGINS"].split(",")

    # Sextant correction overrides
    if "CELNAV_HEIGHT_OF_EYE_FT" in os.environ:
        env_overrides.setdefault("corrections", {})["height_of_eye_ft"] = float(os.environ["CELNAV_HEIGHT_OF_EYE_FT"])
    if "CELNAV_TEMPERATURE_C" in os.environ:
        env_overrides.setdefault("corrections", {})["temperature_c"] = float(os.environ["CELNAV_TEMPERATURE_C"])
    if "CELNAV_PRESSURE_MB" in os.environ:
        env_overrides.setdefault("corrections", {})["pressure_mb"] = float(os.environ["CELNAV_PRESSURE_MB"])

    # Inertial overrides
    if "CELNAV_STEP_LENGTH_M" in os.environ:
        env_overrides.setdefault("inertial", {})["step_length_m"] = float(os.environ["CELNAV_STEP_LENGTH_M"])
    if "CELNAV_MAGNETIC_DECLINATION" in os.environ:
        env_overrides.setdefault("inertial", {})["magnetic_declination_deg"] = float(os.environ["CELNAV_MAGNETIC_DECLINATION"])

    # Merge environment overrides into config data
    def merge_dict(base, override):
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                merge_dict(base[key], value)
            else:
                base[key] = value

    merge_dict(data, env_overrides)

    try:
        return AppConfig(**data)
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")


def print_config(config: AppConfig) -> None:
    """Print effective configuration on startup."""
    print("=== Celestial Navigation Engine Configuration ===")
    print(f"CORS Origins: {config.api.cors_origins}")
    print(f"Log Level: {config.api.log_level} ({'json' if config.api.json_logs else 'text'})")
    print(f"Sextant: IE {config.corrections.index_error_arcmin}' | HoE {config.corrections.height_of_eye_ft} ft | {config.corrections.limb} limb")
    print(f"Atmosphere: {config.corrections.temperature_c} °C, {config.corrections.pressure_mb} mb")
    print(f"LOP Chord: ±{config.reduction.lop_half_length_nm} nm (store up to {config.reduction.max_lops})")
    print(f"Fix Quality: good > {config.reduction.good_fix_angle_deg}°, fair > {config.reduction.fair_fix_angle_deg}°")
    print(f"Visibility: alt ≥ {config.visibility.min_altitude_deg}°, stars when Sun < {config.visibility.twilight_sun_altitude_deg}°")
    print(f"DR Log: {config.dead_reckoning.position_log_size} positions")
    print(f"Step Length: {config.inertial.step_length_m} m | Declination: {config.inertial.magnetic_declination_deg}°")
    print("=" * 49)
