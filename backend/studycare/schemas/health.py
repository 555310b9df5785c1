"""
StudyCare Backend — Health & Metrics Schemas
==============================================
"""

from datetime import datetime
from typing import Dict

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """
    Returned by GET /health (not wrapped in the envelope: probes read the
    top-level `status`).
    """

    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    message: str
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    ai: str = Field(description="AI provider status: available, unavailable, circuit_open")
    uptime_seconds: float = Field(description="Seconds since service started")
    timestamp: datetime


class RequestCounts(BaseModel):
    total: int
    by_method: Dict[str, int]
    by_status: Dict[str, int]


class ResponseTimes(BaseModel):
    average: float
    min: float
    max: float
    p95: float
    p99: float


class ErrorCounts(BaseModel):
    total: int
    by_type: Dict[str, int]


class MemoryUsage(BaseModel):
    used: int
    total: int
    percentage: float


class MetricsSnapshot(BaseModel):
    requests: RequestCounts
    response_times: ResponseTimes
    errors: ErrorCounts
    active_connections: int
    uptime_seconds: float
    memory: MemoryUsage
