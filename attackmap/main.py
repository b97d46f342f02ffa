from fastapi import FastAPI, HTTPException
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional
import logging

from .cache import create_redis_client
from .config.settings import settings
from .services.attack_event_service import AttackEventService
from .services.cache_service import CacheService
from .services.cache_state import ProcessCacheState
from .services.feed_service import FeedService
from .services.geo_intelligence_service import GeointelligenceServices
from .services.refresh_service import RefreshService
from .services.scoring_service import RiskScoringService

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

cache_state = ProcessCacheState()
cache_services = CacheService(settings, create_redis_client(settings))
feed_services = FeedService(settings)
geo_services = GeointelligenceServices(settings, cache_services, cache_state)
scoring_services = RiskScoringService()
refresh_services = RefreshService(
    settings, cache_services, feed_services, geo_services, scoring_services, cache_state
)
attack_event_services = AttackEventService(refresh_services, cache_services, feed_services)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await feed_services.close()
    await geo_services.close()
    await cache_services.close()


app = FastAPI(
    title="AttackMap",
    description="Live map of IPs reported by public threat intelligence feeds",
    version="1.0.0",
    lifespan=lifespan
)


@app.get("/")
def get():
    return {"message": "AttackMap API"}


@app.get("/health")
def health():
    return {
        "status": "healthy",
        "services": ["feeds", "geolocation", "cache"]
    }


@app.get("/api/events")
async def get_events():
    try:
        events = await attack_event_services.list_events()
    except Exception as e:
        logger.error(f"Error in /api/events: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch threat data")

    return [
        {
            **event.model_dump(),
            "threatLevel": scoring_services.get_threat_level(event.score),
        } for event in events
    ]


@app.get("/api/summary")
async def get_summary():
    try:
        summary = await attack_event_services.get_summary()
    except Exception as e:
        logger.error(f"Error in /api/summary: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch summary data")

    return summary.model_dump(by_alias=True)


@app.get("/api/data-sources")
def get_data_sources():
    try:
        return [source.model_dump() for source in attack_event_services.list_data_sources()]
    except Exception as e:
        logger.error(f"Error in /api/data-sources: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch data sources")


@app.get("/api/debug/redis")
async def get_redis_debug(secret: Optional[str] = None):
    if settings.environment == "production" and (not settings.debug_secret or secret != settings.debug_secret):
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        stats = await attack_event_services.get_debug_stats()
    except Exception as e:
        logger.error(f"Error in /api/debug/redis: {e}")
        raise HTTPException(status_code=500, detail="Failed to get Redis stats")

    return {
        **stats,
        "environment": {
            "hasRedisUrl": bool(settings.redis_url),
            "environment": settings.environment,
        },
        "timestamp": datetime.now().isoformat(),
    }
