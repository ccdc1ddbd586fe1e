from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict


class StructuredAddress(BaseModel):
    """Address components accepted by the forward geocoder."""
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: str = "US"

    def query_parts(self) -> list[str]:
        parts = [self.street, self.city, self.state, self.postal_code, self.country]
        return [p.strip() for p in parts if p and p.strip()]

    @classmethod
    def from_city_state(cls, text: str) -> "StructuredAddress":
        """Treat a bare string as "City, State"."""
        parts = [p.strip() for p in text.split(",")]
        return cls(
            city=parts[0] or None if parts else None,
            state=parts[1] or None if len(parts) > 1 else None,
            country="US",
        )


class GeoPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float
    lon: float


class ResolvedAddress(BaseModel):
    """Result of a reverse geocode; street is empty only for imprecise matches."""
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: str = "US"
    place_type: Optional[str] = None
