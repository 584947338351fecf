"""
RawAgg Configuration Module
===========================
Handles environment variables and secret management.
Supports both .env files (dev) and OpenBao (prod).
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple
from dotenv import load_dotenv

# Load .env file if present
load_dotenv()


@dataclass
class StudyDataConfig:
    """Remote study-data service configuration."""
    base_url: str
    api_token: str = ""
    timeout_sec: float = 30.0


@dataclass
class AggregationConfig:
    """Tunables for the cross-respondent aggregation."""
    min_respondents: int = 2
    fixed_rate_hz: float = 30.0
    max_workers: int = 1

    # Families whose devices stamp frames unreliably; timestamps are rebuilt
    fixed_rate_families: Tuple[str, ...] = ("Affectiva AFFDEX", "RealEye")

    # Families labelled by device name rather than per-study instance
    external_device_families: Tuple[str, ...] = (
        "Shimmer GSR",
        "Empatica E4",
        "LSL",
        "Generic Input",
    )

    eye_tracking_families: Tuple[str, ...] = ("Eyetracker",)
    facial_expression_families: Tuple[str, ...] = ("Affectiva AFFDEX", "FEA")


@dataclass
class Config:
    """Main application configuration."""
    studydata: StudyDataConfig
    aggregation: AggregationConfig = field(default_factory=AggregationConfig)
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"


def _get_from_openbao() -> Optional[dict]:
    """
    Fetch secrets from OpenBao/Vault if configured.
    Returns None if OpenBao is not configured.
    """
    openbao_addr = os.getenv("OPENBAO_ADDR")
    openbao_token = os.getenv("OPENBAO_TOKEN")
    
    if not openbao_addr or not openbao_token:
        return None
    
    import hvac
    from hvac.exceptions import VaultError
    client = hvac.Client(url=openbao_addr, token=openbao_token)
    
    if not client.is_authenticated():
        print("Warning: OpenBao authentication failed, falling back to .env")
        return None
    
    try:
        return client.secrets.kv.v2.read_secret_version(
            path="rawagg/studydata"
        )["data"]["data"]
    except VaultError as e:
        print(f"Warning: OpenBao error ({e}), falling back to .env")
        return None


def load_config() -> Config:
    """
    Load configuration from OpenBao (prod) or .env (dev).
    OpenBao takes precedence if configured.
    """
    secrets = _get_from_openbao()
    
    if secrets:
        studydata = StudyDataConfig(
            base_url=secrets.get("base_url", "http://localhost:8086/api"),
            api_token=secrets.get("api_token", ""),
            timeout_sec=float(secrets.get("timeout_sec", 30)),
        )
    else:
        studydata = StudyDataConfig(
            base_url=os.getenv("RAWAGG_API_URL", "http://localhost:8086/api"),
            api_token=os.getenv("RAWAGG_API_TOKEN", ""),
            timeout_sec=float(os.getenv("RAWAGG_API_TIMEOUT", "30")),
        )
    
    aggregation = AggregationConfig(
        max_workers=int(os.getenv("RAWAGG_MAX_WORKERS", "1")),
    )
    
    return Config(
        studydata=studydata,
        aggregation=aggregation,
        api_host=os.getenv("API_HOST", "0.0.0.0"),
        api_port=int(os.getenv("API_PORT", "8000")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )


# Singleton config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the application configuration (singleton)."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


if __name__ == "__main__":
    config = get_config()
    print("Configuration loaded successfully!")
    print(f"  Study data API: {config.studydata.base_url}")
    print(f"  Workers: {config.aggregation.max_workers}")
    print(f"  API: {config.api_host}:{config.api_port}")
