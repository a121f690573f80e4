"""
Internal router - health checks and serve statistics.
"""
from typing import Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from mock_api.state import AppState, get_app_state

# Kept out of the way of every path the production API could serve
INTERNAL_PREFIX = "/__mock_api__"

router = APIRouter(prefix=INTERNAL_PREFIX, tags=["internal"])


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(examples=["healthy"])


class PathStatsResponse(BaseModel):
    """Statistics for a single request path."""
    request_count: int = Field(examples=[12], description="Total number of requests")
    fixture_count: int = Field(examples=[9], description="Requests served from a persisted fixture")
    override_count: int = Field(examples=[1], description="Requests served by a route override")
    production_count: int = Field(examples=[1], description="Requests recorded from the production API")
    error_count: int = Field(examples=[1], description="Requests answered with a server error")
    error_rate_percent: float = Field(examples=[8.33], description="Percentage of failed requests")


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="healthy")


@router.get("/stats", response_model=Dict[str, PathStatsResponse])
async def stats(state: AppState = Depends(get_app_state)) -> Dict[str, PathStatsResponse]:
    """
    Get statistics for every request path answered since the application started.

    Returns a dictionary where keys are request paths (with query string) and values contain:
    - **request_count**: Total number of requests
    - **fixture_count**: Served from a persisted fixture
    - **override_count**: Served by a route override
    - **production_count**: Recorded from the production API
    - **error_count**: Answered with a server error
    - **error_rate_percent**: Percentage of failed requests
    """
    return await state.stats.get_all_stats()
