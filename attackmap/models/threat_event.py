from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class RawEntry(BaseModel):
    ip: str
    source: str
    reason: str


class NormalizedEvent(RawEntry):
    timestamp: int  # fetch time, epoch ms


class ScoredEvent(NormalizedEvent):
    risk: int = Field(ge=0, le=100)
    score: int = Field(ge=0, le=100)
    feed_count: int = Field(ge=1)


class GeoLocation(BaseModel):
    latitude: float
    longitude: float
    country: str
    city: Optional[str] = None


class AttackEvent(BaseModel):
    """Stored form of one event, one per IP"""
    id: str
    ip: str
    latitude: float
    longitude: float
    country: str
    city: Optional[str] = None
    score: int = Field(ge=0, le=100)
    source: str
    reason: str
    timestamp: int


class CountryStats(BaseModel):
    country: str
    count: int


class Summary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total: int
    top_countries: List[CountryStats] = Field(default_factory=list, alias="topCountries")
    average_risk: int = Field(0, alias="averageRisk")
    last_update: int = Field(0, alias="lastUpdate")


class DataSource(BaseModel):
    id: str
    name: str
    description: str
    url: str
    status: str  # "active" | "inactive"
    type: str    # "threat-intel" | "honeypot" | "blocklist"
