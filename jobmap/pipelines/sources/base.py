"""Base class for job source adapters."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

import httpx

from jobmap.config import settings
from jobmap.models.job import JobSource, SourceJobDraft
from jobmap.models.result import ConfigurationError, FailureKind, Result

logger = logging.getLogger(__name__)


class JobSourceAdapter(ABC):
    """
    One adapter per job source.

    fetch() never raises for source-side failures: a dead source yields a
    failure Result and the other sources carry on. Missing credentials are a
    ConfigurationError raised by ensure_configured() before any run starts.
    """

    name: str
    source: JobSource
    required_settings: Tuple[str, ...] = ()

    def ensure_configured(self) -> None:
        settings.require(*self.required_settings)

    async def fetch(
        self, location: str, keyword: Optional[str] = None
    ) -> Result[List[SourceJobDraft]]:
        try:
            drafts = await self._fetch(location, keyword)
        except ConfigurationError:
            raise
        except httpx.HTTPError as e:
            logger.error(f"   ❌ {self.name}: request failed after retries: {e}")
            return Result.failure(FailureKind.TRANSIENT, str(e))
        except Exception as e:
            logger.exception(f"   ❌ {self.name}: fetch failed: {e}")
            return Result.failure(FailureKind.TRANSIENT, str(e))
        logger.info(f"   📥 {self.name}: fetched {len(drafts)} drafts")
        return Result.success(drafts)

    @abstractmethod
    async def _fetch(self, location: str, keyword: Optional[str]) -> List[SourceJobDraft]:
        raise NotImplementedError


def parse_posted_at(value: Optional[str]) -> Optional[datetime]:
    """ISO-8601 timestamps from source payloads; None when absent or unreadable."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
