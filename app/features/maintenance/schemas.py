"""Pydantic schemas for maintenance jobs."""

from pydantic import BaseModel, ConfigDict, Field


class RefreshResponse(BaseModel):
    """Outcome of a materialized view refresh run.

    ``logs`` holds one human-readable line per refresh attempt, in order.
    On failure ``error`` names the view that could not be refreshed.
    """

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    total_time: str = Field(..., alias="totalTime")
    logs: list[str] = Field(default_factory=list)
    error: str | None = None
