"""
Configuration Settings.
"""

from pydantic_settings import BaseSettings
from typing import Optional, Dict, List


class Settings(BaseSettings):
    """Application settings."""

    # App info
    app_name: str = "ObDoc Challenge Engine"
    app_version: str = "1.0.0"
    debug: bool = True

    # Security (bearer token decoding only)
    secret_key: str = "your-secret-key-change-this-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7  # 7 days

    # Storage
    storage_type: str = "memory"  # memory, local
    local_storage_path: str = "./data"

    # Health risk criteria
    high_risk_conditions: List[str] = [
        "diabetes",
        "hypertension",
        "heart disease",
        "kidney disease",
        "liver disease",
        "eating disorder",
    ]
    high_risk_medications: List[str] = [
        "insulin",
        "blood pressure medication",
        "anticoagulant",
        "steroid",
    ]
    risk_symptoms: List[str] = [
        "severe dizziness",
        "heart palpitations",
        "extreme fatigue",
        "difficulty concentrating",
        "headache",
        "nausea",
    ]
    age_risk_young: int = 18
    age_risk_elderly: int = 65
    bmi_underweight: float = 18.5
    min_condition_score: int = 3  # 1-10 scale, at or below is a risk signal

    # Progress and lifecycle
    success_threshold: float = 80.0  # completion rate (%) required at end date
    fail_when_unreachable: bool = True
    water_min_amount_ml: float = 50.0
    water_max_daily_ml: float = 10000.0
    milestone_thresholds: Dict[str, List[int]] = {
        "water_intake": [3, 7, 14, 30],
        "colorful_diet": [5, 10, 21, 30],
        "dii_analysis": [7, 14, 30],
        "intermittent_fasting": [3, 7, 14, 21],
    }
    reminder_hours: Dict[str, List[int]] = {
        "water_intake": [9, 12, 15, 18, 21],
        "colorful_diet": [12, 18],
        "dii_analysis": [20],
        "intermittent_fasting": [8, 16],
    }

    # AI providers
    ai_fallback_order: List[str] = ["openai", "claude", "google"]
    ai_type_preferences: Dict[str, List[str]] = {
        "food_recognition": ["openai", "claude", "google"],
        "dii_calculation": ["claude", "openai", "google"],
        "health_assessment": ["claude", "openai", "google"],
        "risk_detection": ["claude", "openai", "google"],
    }
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    openai_model: Optional[str] = None
    openai_cost_per_request: float = 0.002
    openai_timeout: float = 10.0
    claude_api_key: Optional[str] = None
    claude_base_url: Optional[str] = None
    claude_model: Optional[str] = None
    claude_cost_per_request: float = 0.003
    claude_timeout: float = 15.0
    google_api_key: Optional[str] = None
    google_base_url: Optional[str] = None
    google_model: Optional[str] = None
    google_cost_per_request: float = 0.001
    google_timeout: float = 8.0

    ai_daily_cost_limit: float = 50.0  # USD
    ai_monthly_cost_limit: float = 1000.0  # USD
    ai_confidence_threshold: float = 0.7
    ai_cache_ttl_seconds: int = 3600
    ai_cache_max_entries: int = 1000
    ai_annotation_mode: str = "inline"  # "inline" or "background"

    # CORS
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Logging configuration
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file_path: str = "./logs/obdoc.log"
    log_file_enabled: bool = True
    log_console_enabled: bool = True
    log_json_format: bool = True  # JSON format for files, human-readable for console
    log_api_requests: bool = True  # Log all API requests/responses

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
