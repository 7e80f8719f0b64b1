"""
Progress feedback for the dashboard: weekly completion, motivational
message and the "time to train harder" hint.
"""
from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable, Optional

MESSAGES = (
    (90, "🔥 Incrível! Você está arrasando! Continue assim!"),
    (80, "💪 Ótimo trabalho! Você bateu 80% da meta!"),
    (70, "👏 Bom progresso! Mantenha o foco!"),
    (50, "⚡ Você está no caminho certo! Não desista!"),
)
FALLBACK_MESSAGE = "🎯 Vamos lá! Cada dia é uma nova oportunidade!"

INTENSITY_RATE_THRESHOLD = 80
INTENSITY_WEEKS_THRESHOLD = 2
MAX_WEEKS_LOOKBACK = 8


def motivational_message(completion_rate: float) -> str:
    for threshold, message in MESSAGES:
        if completion_rate >= threshold:
            return message
    return FALLBACK_MESSAGE


def should_increase_intensity(completion_rate: float, weeks_consistent: int) -> bool:
    return completion_rate >= INTENSITY_RATE_THRESHOLD and weeks_consistent >= INTENSITY_WEEKS_THRESHOLD


def completion_rate(workout_dates: Iterable[date], training_days: int, week_end: date) -> float:
    """
    Percentage (0-100) of planned training days done in the 7 days ending on `week_end`.

    Extra sessions beyond the plan do not push the rate above 100.
    """
    planned = max(int(training_days or 0), 1)
    start = week_end - timedelta(days=6)
    done = len({d for d in workout_dates if start <= d <= week_end})
    return round(min(done / planned, 1.0) * 100, 1)


def weeks_consistent(workout_dates: Iterable[date], training_days: int, today: Optional[date] = None) -> int:
    """Consecutive 7-day windows, newest first, at or above the intensity threshold."""
    today = today or date.today()
    dates = set(workout_dates)
    weeks = 0
    for i in range(MAX_WEEKS_LOOKBACK):
        week_end = today - timedelta(days=7 * i)
        if completion_rate(dates, training_days, week_end) < INTENSITY_RATE_THRESHOLD:
            break
        weeks += 1
    return weeks


def percent_of_target(value: Optional[float], target: Optional[float]) -> Optional[float]:
    if value is None or not target:
        return None
    return round(value / target * 100, 1)
