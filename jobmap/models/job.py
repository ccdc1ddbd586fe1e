from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, HttpUrl, model_validator


class JobSource(str, Enum):
    ADZUNA = "ADZUNA"
    USAJOBS = "USAJOBS"
    MANUAL = "MANUAL"
    LINKEDIN = "LINKEDIN"
    INDEED = "INDEED"
    ZIPRECRUITER = "ZIPRECRUITER"
    ARIZONA_JOB_CONNECTION = "ARIZONA_JOB_CONNECTION"
    GOOGLE_JOBS = "GOOGLE_JOBS"


class JobStatus(str, Enum):
    APPROVED = "APPROVED"
    PENDING = "PENDING"
    REJECTED = "REJECTED"


class EmploymentType(str, Enum):
    FULL_TIME = "FULL_TIME"
    PART_TIME = "PART_TIME"
    CONTRACT = "CONTRACT"
    TEMP = "TEMP"
    INTERN = "INTERN"


def default_status(source: JobSource) -> JobStatus:
    """Manual submissions wait for moderation; everything else is live."""
    return JobStatus.PENDING if source == JobSource.MANUAL else JobStatus.APPROVED


class SourceJobDraft(BaseModel):
    """
    Adapter output. Lives only for the duration of one ingestion run.

    API sources may fill latitude/longitude and structured pay directly;
    scraped sources usually only carry free text.
    """
    source: JobSource
    source_id: str
    title: Optional[str] = None
    company: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None

    location_text: Optional[str] = None
    # Street line some boards show apart from the description
    address_text: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    salary_text: Optional[str] = None
    pay_min: Optional[float] = None
    pay_max: Optional[float] = None
    pay_currency: str = "USD"
    employment_type_text: Optional[str] = None
    posted_at: Optional[datetime] = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class JobPostingInput(BaseModel):
    """Canonical record handed to the upsert engine."""
    source: JobSource
    source_id: str
    title: str
    company: str
    description: str = ""
    url: str = ""

    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: str = "US"
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    employment_type: Optional[EmploymentType] = None
    pay_min: Optional[int] = None
    pay_max: Optional[int] = None
    pay_currency: str = "USD"
    posted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # None keeps the stored moderation decision on update
    status: Optional[JobStatus] = None


# ============================================================
# Search
# ============================================================

class BoundingBox(BaseModel):
    min_lon: float = Field(..., ge=-180, le=180)
    min_lat: float = Field(..., ge=-90, le=90)
    max_lon: float = Field(..., ge=-180, le=180)
    max_lat: float = Field(..., ge=-90, le=90)

    @model_validator(mode="after")
    def check_order(self) -> "BoundingBox":
        if self.min_lon > self.max_lon or self.min_lat > self.max_lat:
            raise ValueError("bbox minimums must not exceed maximums")
        return self

    @classmethod
    def parse(cls, text: str) -> "BoundingBox":
        min_lon, min_lat, max_lon, max_lat = (float(p) for p in text.split(","))
        return cls(min_lon=min_lon, min_lat=min_lat, max_lon=max_lon, max_lat=max_lat)

    def to_wkt(self) -> str:
        return (
            f"POLYGON(({self.min_lon} {self.min_lat}, {self.max_lon} {self.min_lat}, "
            f"{self.max_lon} {self.max_lat}, {self.min_lon} {self.max_lat}, "
            f"{self.min_lon} {self.min_lat}))"
        )

    def contains(self, lat: float, lon: float) -> bool:
        return self.min_lon <= lon <= self.max_lon and self.min_lat <= lat <= self.max_lat


class SearchFilters(BaseModel):
    bbox: BoundingBox
    q: Optional[str] = None
    company: Optional[str] = None
    min_pay: Optional[int] = Field(None, gt=0)
    max_age_days: Optional[int] = Field(None, gt=0)
    types: List[EmploymentType] = Field(default_factory=list)
    limit: int = Field(200, ge=1, le=500)

    @property
    def has_optional_filters(self) -> bool:
        return bool(self.q or self.company or self.min_pay or self.max_age_days or self.types)


class JobPin(BaseModel):
    id: str
    title: str
    company: str
    url: Optional[str] = None
    lat: float
    lon: float
    pay_min: Optional[int] = None
    pay_max: Optional[int] = None
    posted_at: Optional[datetime] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    employment_type: Optional[EmploymentType] = None
    source: JobSource


class SearchResponse(BaseModel):
    jobs: List[JobPin]
    count: int


class JobDetail(BaseModel):
    id: str
    source: JobSource
    source_id: str
    title: str
    company: str
    description: Optional[str] = None
    url: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: str = "US"
    latitude: float
    longitude: float
    employment_type: Optional[EmploymentType] = None
    pay_min: Optional[int] = None
    pay_max: Optional[int] = None
    pay_currency: Optional[str] = None
    posted_at: Optional[datetime] = None
    status: Optional[JobStatus] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SuggestionType(str, Enum):
    title = "title"
    company = "company"


class SuggestionResponse(BaseModel):
    suggestions: List[str]


# ============================================================
# Employer / admin
# ============================================================

class AddressValidationRequest(BaseModel):
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=2, max_length=2)
    postal_code: str = Field(..., min_length=5)
    country: str = "US"


class EmployerPostRequest(BaseModel):
    company: str = Field(..., min_length=1, max_length=200)
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=10, max_length=5000)
    employment_type: Optional[EmploymentType] = None
    pay_min: Optional[int] = Field(None, gt=0)
    pay_max: Optional[int] = Field(None, gt=0)
    url: HttpUrl
    street: str = Field(..., min_length=1, max_length=200)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=2, max_length=2)
    postal_code: str = Field(..., min_length=5, max_length=10)
    country: str = "US"
    captcha_token: Optional[str] = None

    @model_validator(mode="after")
    def check_pay_range(self) -> "EmployerPostRequest":
        if self.pay_min and self.pay_max and self.pay_min > self.pay_max:
            raise ValueError("pay_min must not exceed pay_max")
        return self


class EmployerPostResponse(BaseModel):
    success: bool = True
    id: str
    title: str
    company: str
    latitude: float
    longitude: float
    message: str


class AdminJobList(BaseModel):
    jobs: List[JobDetail]
    total: int
    limit: int
    offset: int


class StatusUpdateResponse(BaseModel):
    id: str
    status: JobStatus


class IngestRequest(BaseModel):
    location: Optional[str] = None
    keyword: Optional[str] = None
    sources: Optional[List[str]] = None
