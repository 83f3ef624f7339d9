from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Optional, cast

import os
import yaml


# ---- Strict dataclasses (no defaults; everything must come from YAML) ----

@dataclass
class LoggingConfig:
    level: str


@dataclass
class RedisConfig:
    host: str
    port: int
    db: int


@dataclass
class TimeoutConfig:
    whois_s: float
    whois_max_wait_s: float
    dns_s: float
    tls_s: float
    http_s: float
    geolocation_s: float


@dataclass
class RedirectConfig:
    max_redirects: int
    user_agent: str


@dataclass
class GeolocationConfig:
    base_url: str
    api_key: Optional[str]


@dataclass
class ReferenceConfig:
    # optional YAML file overriding the built-in reference tables
    path: Optional[str]


@dataclass
class Config:
    DEFAULT_PATH: ClassVar[str] = "config.yaml"
    ENV_PATH: ClassVar[str] = "TRUSTSCAN_CONFIG"
    ENV_GEO_KEY: ClassVar[str] = "IP_GEOLOCATION_API_KEY"

    logging: LoggingConfig
    redis: RedisConfig
    timeouts: TimeoutConfig
    redirects: RedirectConfig
    geolocation: GeolocationConfig
    reference: ReferenceConfig

    # ---- Strict loader helpers ----
    @staticmethod
    def _require_dict(d: Dict[str, Any], key: str) -> Dict[str, Any]:
        if key not in d or not isinstance(d[key], dict):
            raise ValueError(f"Missing or invalid '{key}' section in config")
        return d[key]

    @staticmethod
    def _require(d: Dict[str, Any], key: str) -> Any:
        if key not in d:
            raise ValueError(f"Missing '{key}' in config")
        return d[key]

    @staticmethod
    def _optional_str(value: Any) -> Optional[str]:
        return None if value in (None, "") else str(value)

    @staticmethod
    def default() -> "Config":
        """Configuration matching the shipped config.yaml, for library callers and tests."""
        return Config(
            logging=LoggingConfig(level="INFO"),
            redis=RedisConfig(host="localhost", port=6379, db=0),
            timeouts=TimeoutConfig(
                whois_s=10.0,
                whois_max_wait_s=8.0,
                dns_s=5.0,
                tls_s=5.0,
                http_s=10.0,
                geolocation_s=5.0,
            ),
            redirects=RedirectConfig(
                max_redirects=5,
                user_agent=(
                    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
                    "(KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36"
                ),
            ),
            geolocation=GeolocationConfig(
                base_url="https://api.ipgeolocation.io",
                api_key=Config._optional_str(os.environ.get(Config.ENV_GEO_KEY)),
            ),
            reference=ReferenceConfig(path=None),
        )

    @staticmethod
    def load(path: Optional[str] = None) -> "Config":
        cfg_path: str = path or os.environ.get(Config.ENV_PATH) or Config.DEFAULT_PATH
        if not os.path.exists(cfg_path):
            raise FileNotFoundError(f"Config file not found: {cfg_path}")

        with open(cfg_path, "r", encoding="utf-8") as f:
            raw_any: Any = yaml.safe_load(f) or {}
        if not isinstance(raw_any, dict):
            raise ValueError("Top-level YAML structure must be a mapping")
        raw: Dict[str, Any] = cast(Dict[str, Any], raw_any)

        # ---- Logging ----
        logging_raw = Config._require_dict(raw, "logging")
        logging_cfg = LoggingConfig(level=str(Config._require(logging_raw, "level")).upper())

        # ---- Redis ----
        redis_raw = Config._require_dict(raw, "redis")
        redis_cfg = RedisConfig(
            host=str(Config._require(redis_raw, "host")),
            port=int(Config._require(redis_raw, "port")),
            db=int(Config._require(redis_raw, "db")),
        )

        # ---- Timeouts ----
        timeouts_raw = Config._require_dict(raw, "timeouts")
        timeouts = TimeoutConfig(
            whois_s=float(Config._require(timeouts_raw, "whois_s")),
            whois_max_wait_s=float(Config._require(timeouts_raw, "whois_max_wait_s")),
            dns_s=float(Config._require(timeouts_raw, "dns_s")),
            tls_s=float(Config._require(timeouts_raw, "tls_s")),
            http_s=float(Config._require(timeouts_raw, "http_s")),
            geolocation_s=float(Config._require(timeouts_raw, "geolocation_s")),
        )

        # ---- Redirects ----
        redirects_raw = Config._require_dict(raw, "redirects")
        redirects = RedirectConfig(
            max_redirects=int(Config._require(redirects_raw, "max_redirects")),
            user_agent=str(Config._require(redirects_raw, "user_agent")),
        )
        if redirects.max_redirects < 1:
            raise ValueError("redirects.max_redirects must be at least 1")

        # ---- Geolocation ----
        geo_raw = Config._require_dict(raw, "geolocation")
        api_key: Optional[str] = (Config._optional_str(os.environ.get(Config.ENV_GEO_KEY))
                                  or Config._optional_str(Config._require(geo_raw, "api_key")))
        geolocation = GeolocationConfig(
            base_url=str(Config._require(geo_raw, "base_url")).rstrip("/"),
            api_key=api_key,
        )

        # ---- Reference tables ----
        reference_raw = Config._require_dict(raw, "reference")
        reference = ReferenceConfig(path=Config._optional_str(Config._require(reference_raw, "path")))

        return Config(
            logging=logging_cfg,
            redis=redis_cfg,
            timeouts=timeouts,
            redirects=redirects,
            geolocation=geolocation,
            reference=reference,
        )
