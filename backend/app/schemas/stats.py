from datetime import date
from typing import Optional

from pydantic import BaseModel


class StreakSummary(BaseModel):
    current: int
    best: int
    last_active_date: Optional[date] = None


class VelocitySummary(BaseModel):
    window_days: int
    pages_per_day: float
    minutes_per_day: float
    total_pages: int
    total_minutes: int
    active_days: int
