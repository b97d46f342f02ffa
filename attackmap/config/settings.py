from pydantic_settings import BaseSettings
from typing import Optional
from pathlib import Path


class Settings(BaseSettings):
    environment: str = "development"          # "development" or "production"
    log_level: str = "INFO"
    debug_secret: Optional[str] = None

    # Distributed cache. Unset means local-only mode
    redis_url: Optional[str] = None
    redis_key_prefix: str = "ddos:"
    redis_socket_timeout: float = 5.0
    redis_retry_interval: int = 60            # seconds before retrying a failed Redis

    # Feed URLs, a feed without a URL is inactive
    feed_firehol_l1: Optional[str] = None
    feed_firehol_l2: Optional[str] = None
    feed_spamhaus_drop: Optional[str] = None
    feed_spamhaus_edrop: Optional[str] = None
    feed_abusech_feodo: Optional[str] = None
    feed_abusech_sslbl: Optional[str] = None
    feed_blocklist_de: Optional[str] = None
    feed_cinsscore: Optional[str] = None
    feed_emerging_threats: Optional[str] = None
    feed_bruteforceblocker: Optional[str] = None
    feed_cache_ttl: int = 1800                # 30 mins
    feed_timeout: float = 20.0

    # Geolocation provider (ip-api batch endpoint)
    ip_api_batch_url: Optional[str] = None
    geo_batch_size: int = 100
    geo_batch_delay: float = 0.25
    geo_timeout: float = 10.0

    # TTLs in seconds
    geo_ttl: int = 604800
    events_ttl: int = 86400
    lock_ttl: int = 60
    lock_wait: float = 2.0
    summary_ttl: int = 300

    refresh_interval_ms: int = 7200000        # 2 hours
    max_events: int = 300

    class Config:
        env_file = Path(__file__).parent.parent.parent / ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
