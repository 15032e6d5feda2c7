"""
Sync result reporting.
Reports are pydantic models so the HTTP layer and scripts can serialize them as-is.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field


def format_duration(started: float, finished: float) -> str:
    """Monotonic start/finish seconds -> '123ms'."""
    return f"{int(round((finished - started) * 1000))}ms"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class PhaseReport(BaseModel):
    """Outcome of one catalog phase (categories, products or inventory)."""
    success: bool = True
    processed: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    errors: Optional[list[str]] = None
    error: Optional[str] = None  # phase-fatal fetch failure
    status_code: Optional[int] = None

    def add_error(self, message: str) -> None:
        if self.errors is None:
            self.errors = []
        self.errors.append(message)


class FullSyncReport(BaseModel):
    success: bool = True
    enabled: bool = True
    message: Optional[str] = None
    error: Optional[str] = None
    auth_failed: bool = False
    duration: Optional[str] = None
    timestamp: str = Field(default_factory=utc_timestamp)
    categories: PhaseReport = Field(default_factory=PhaseReport)
    products: PhaseReport = Field(default_factory=PhaseReport)
    inventory: PhaseReport = Field(default_factory=PhaseReport)

    @classmethod
    def disabled(cls) -> "FullSyncReport":
        return cls(
            success=True,
            enabled=False,
            message="Clover sync is disabled",
            duration="0ms",
        )

    @property
    def has_record_errors(self) -> bool:
        return any(phase.errors for phase in (self.categories, self.products, self.inventory))


class OrderSyncReport(BaseModel):
    success: bool = True
    enabled: bool = True
    message: Optional[str] = None
    processed: int = 0
    inserted: int = 0
    updated: int = 0
    marked_for_delete: int = 0
    unmatched: int = 0
    errors: Optional[list[str]] = None
    error: Optional[str] = None
    auth_failed: bool = False
    duration: Optional[str] = None
    timestamp: str = Field(default_factory=utc_timestamp)

    @classmethod
    def disabled(cls) -> "OrderSyncReport":
        return cls(
            success=True,
            enabled=False,
            message="Clover sync is disabled",
            duration="0ms",
        )

    def add_error(self, message: str) -> None:
        if self.errors is None:
            self.errors = []
        self.errors.append(message)
