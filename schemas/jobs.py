"""
Pydantic schemas for sync job requests and results
"""

from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from models.base import JobStatus


class QueryOptions(BaseModel):
    """Options forwarded to a provider's bulk fetch"""
    limit: Optional[int] = Field(None, ge=1)
    filters: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_filters(cls, stored: Optional[Dict[str, Any]]) -> Optional["QueryOptions"]:
        """
        Build options from a schedule's stored filters.

        `limit` and a nested `filters` dict map to their fields; every other
        top-level key is a provider filter.

        Raises:
            pydantic.ValidationError: If a known field has an invalid value
        """
        if not stored:
            return None
        stored = dict(stored)
        limit = stored.pop("limit", None)
        filters = stored.pop("filters", None) or {}
        return cls(limit=limit, filters={**stored, **filters})


class SyncResult(BaseModel):
    """Outcome of one sync run, as returned by the orchestrator"""
    job_run_id: int
    status: JobStatus
    user_id: int
    client_id: int
    media_kind: str

    total_items: int = 0
    processed_items: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0

    error_message: Optional[str] = None
