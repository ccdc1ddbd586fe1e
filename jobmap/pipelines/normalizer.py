"""
Normalizer - SourceJobDraft -> canonical JobPostingInput
jobmap/pipelines/normalizer.py

Steps:
1. Coordinates from the draft, else forward geocode of the location text
2. Street-address extraction from the address field or description (first pattern wins)
3. Extracted address -> re-geocode for a more precise point
4. No extracted address -> reverse geocode the step 1 point
5. No street from either path -> draft is dropped
6. Employment type and salary text mapped to canonical values
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from jobmap.models.geocode import GeoPoint, StructuredAddress
from jobmap.models.job import EmploymentType, JobPostingInput, SourceJobDraft

logger = logging.getLogger(__name__)

STREET_SUFFIXES = (
    "Street|St|Avenue|Ave|Road|Rd|Boulevard|Blvd|Drive|Dr|Lane|Ln|Way|Court|Ct|"
    "Circle|Cir|Place|Pl|Parkway|Pkwy"
)
_STREET = rf"\d+\s+[A-Za-z0-9\s]+?\b(?:{STREET_SUFFIXES})\b\.?"
_UNIT = r"[,\s]+(?:Suite|Ste|Unit|Apt|Apartment|#)\s*\d+"

# Ordered most to least specific
ADDRESS_PATTERNS: List[re.Pattern] = [
    # full address with ZIP
    re.compile(rf"{_STREET}[,\s]+(?:[A-Za-z\s]+,\s*)?[A-Z]{{2}}\s+\d{{5}}(?:-\d{{4}})?", re.IGNORECASE),
    # address with city/state
    re.compile(rf"{_STREET}[,\s]+(?:[A-Za-z\s]+,\s*)?[A-Z]{{2}}\b", re.IGNORECASE),
    # bare street
    re.compile(_STREET, re.IGNORECASE),
    # street with unit
    re.compile(rf"{_STREET}{_UNIT}", re.IGNORECASE),
]
# Any street the bare pattern finds is a prefix of a street-with-unit match,
# so the unit is appended to whatever match wins instead.
UNIT_SUFFIX = re.compile(_UNIT, re.IGNORECASE)

# (pattern, type); first row matching at a word start wins
EMPLOYMENT_TYPE_PATTERNS: List[Tuple[re.Pattern, EmploymentType]] = [
    (re.compile(r"\bfull[-_ ]?time\b|\bpermanent\b", re.IGNORECASE), EmploymentType.FULL_TIME),
    (re.compile(r"\bpart[-_ ]?time\b", re.IGNORECASE), EmploymentType.PART_TIME),
    (re.compile(r"\bcontract", re.IGNORECASE), EmploymentType.CONTRACT),
    (re.compile(r"\btemp(?:orary)?\b", re.IGNORECASE), EmploymentType.TEMP),
    (re.compile(r"\bintern(?:ship)?s?\b", re.IGNORECASE), EmploymentType.INTERN),
]

HOURLY_THRESHOLD = 100
HOURS_PER_YEAR = 2080
_NUMBER = re.compile(r"\d[\d,]*(?:\.\d+)?")


def extract_street_address(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    for pattern in ADDRESS_PATTERNS:
        match = pattern.search(text)
        if match:
            address = match.group(0)
            unit = UNIT_SUFFIX.match(text, match.end())
            if unit:
                address += unit.group(0)
            return re.sub(r"\s+", " ", address).strip(" ,")
    return None


def normalize_employment_type(text: Optional[str]) -> Optional[EmploymentType]:
    if not text:
        return None
    for pattern, employment_type in EMPLOYMENT_TYPE_PATTERNS:
        if pattern.search(text):
            return employment_type
    return None


def parse_salary(text: Optional[str]) -> Tuple[Optional[int], Optional[int]]:
    """
    "$55,000 - $70,000" -> (55000, 70000); "$22/hr" -> (45760, 45760).
    Values under HOURLY_THRESHOLD are treated as hourly and annualized.
    """
    if not text:
        return None, None
    tokens = []
    for raw in _NUMBER.findall(text):
        try:
            tokens.append(float(raw.replace(",", "")))
        except ValueError:
            continue
    tokens = [t for t in tokens if t > 0]
    if not tokens:
        return None, None
    low, high = min(tokens), max(tokens)
    if high < HOURLY_THRESHOLD:
        low, high = low * HOURS_PER_YEAR, high * HOURS_PER_YEAR
    return round(low), round(high)


def parse_location(text: Optional[str]) -> StructuredAddress:
    """
    "Phoenix, AZ" / "Phoenix, AZ, US" -> city/state/country.
    Anything containing "remote" has no physical location.
    """
    if not text or "remote" in text.lower():
        return StructuredAddress(country="US")
    parts = [p.strip() for p in text.split(",")]
    state = parts[1] if len(parts) > 1 else None
    if state:
        # "AZ 85004" -> "AZ"
        match = re.match(r"^([A-Za-z]{2})\b", state)
        state = match.group(1).upper() if match else None
    country = parts[2] if len(parts) > 2 and parts[2] else "US"
    if country.lower() in ("united states", "usa"):
        country = "US"
    return StructuredAddress(city=parts[0] or None, state=state, country=country)


class Normalizer:
    """Resolves drafts to canonical postings with a street-level address."""

    def __init__(self, resolver):
        self.resolver = resolver

    def _location_hint(self, draft: SourceJobDraft) -> StructuredAddress:
        if draft.city or draft.state:
            return StructuredAddress(
                city=draft.city,
                state=draft.state,
                postal_code=draft.postal_code,
                country=draft.country or "US",
            )
        return parse_location(draft.location_text)

    def normalize(self, draft: SourceJobDraft) -> Optional[JobPostingInput]:
        hint = self._location_hint(draft)

        # 1. initial coordinate
        point: Optional[GeoPoint] = None
        if draft.has_coordinates:
            point = GeoPoint(lat=draft.latitude, lon=draft.longitude)
        elif hint.city or hint.state:
            point = self.resolver.forward_safe(hint)

        # 2. street address from a dedicated field, else from free text
        extracted = extract_street_address(draft.address_text) or extract_street_address(draft.description)

        street = city = state = postal_code = None
        country = hint.country or "US"
        if extracted:
            # 3. re-geocode extracted address with city/state context
            query = StructuredAddress(
                street=extracted,
                city=hint.city,
                state=hint.state,
                country=country,
            )
            precise = self.resolver.forward_safe(query)
            if precise:
                point = precise
            street, city, state, postal_code = extracted, hint.city, hint.state, hint.postal_code
        elif point is not None:
            # 4. reverse geocode
            reverse = self.resolver.reverse(point.lat, point.lon)
            if reverse.ok and reverse.value.street:
                resolved = reverse.value
                street = resolved.street
                city = resolved.city or hint.city
                state = resolved.state or hint.state
                postal_code = resolved.postal_code or hint.postal_code
                country = resolved.country or country

        # 5. street-level invariant
        if point is None or not street:
            logger.debug(
                f"Dropping {draft.source.value}/{draft.source_id}: no street-level address"
            )
            return None

        pay_min, pay_max = self._pay(draft)
        return JobPostingInput(
            source=draft.source,
            source_id=draft.source_id,
            title=(draft.title or "").strip() or "Untitled Position",
            company=(draft.company or "").strip() or "Unknown Company",
            description=draft.description or "",
            url=draft.url or "",
            street=street,
            city=city,
            state=state,
            postal_code=postal_code,
            country=country,
            latitude=point.lat,
            longitude=point.lon,
            employment_type=normalize_employment_type(draft.employment_type_text),
            pay_min=pay_min,
            pay_max=pay_max,
            pay_currency=(draft.pay_currency or "USD").upper(),
            posted_at=draft.posted_at or datetime.now(timezone.utc),
        )

    @staticmethod
    def _pay(draft: SourceJobDraft) -> Tuple[Optional[int], Optional[int]]:
        """Structured pay from API sources wins over salary text."""
        if draft.pay_min is not None or draft.pay_max is not None:
            pay_min = round(draft.pay_min) if draft.pay_min else None
            pay_max = round(draft.pay_max) if draft.pay_max else None
            return pay_min or pay_max, pay_max or pay_min
        return parse_salary(draft.salary_text)
