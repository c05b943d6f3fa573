"""FSRS-style spaced repetition scheduling for flashcards."""
import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from estudeaqui.exceptions import ValidationError
from estudeaqui.models import Flashcard

AGAIN, HARD, GOOD, EASY = 1, 2, 3, 4
RATINGS = (AGAIN, HARD, GOOD, EASY)
RATING_LABELS = {AGAIN: "again", HARD: "hard", GOOD: "good", EASY: "easy"}

# Retrievability after exactly one stability period.
BASE_RETENTION = 0.9


@dataclass(frozen=True)
class FSRSParameters:
    """Scheduler coefficients. Per-rating tuples are indexed by rating - 1."""

    request_retention: float = 0.9
    maximum_interval: int = 36500  # days
    initial_difficulty: float = 5.0
    initial_stability: float = 1.0
    initial_retrievability: float = 0.9
    min_difficulty: float = 1.0
    max_difficulty: float = 10.0
    min_stability: float = 0.1
    max_stability: float = 36500.0
    first_review_stability: tuple = (0.4, 1.2, 3.0, 7.0)
    difficulty_deltas: tuple = (1.0, 0.5, -0.25, -0.75)
    growth_multipliers: tuple = (0.0, 0.3, 1.0, 1.6)
    lapse_multiplier: float = 0.2
    relearning_minutes: int = 10

    def __post_init__(self):
        if not 0 < self.request_retention < 1:
            raise ValidationError("must be between 0 and 1", field="request_retention")
        if self.maximum_interval < 1:
            raise ValidationError("must be at least 1 day", field="maximum_interval")


DEFAULT_PARAMETERS = FSRSParameters()


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def create_initial_flashcard(
    user_id: str,
    question: str,
    answer: str,
    now: datetime | None = None,
    params: FSRSParameters = DEFAULT_PARAMETERS,
) -> Flashcard:
    """Build a new card that is due immediately. The id is assigned on insert."""
    now = now or datetime.now()
    return Flashcard(
        id="",
        user_id=user_id,
        question=question,
        answer=answer,
        difficulty=params.initial_difficulty,
        stability=params.initial_stability,
        retrievability=params.initial_retrievability,
        last_review=now,
        next_review=now,
        created_at=now,
    )


def retrievability_at(
    stability: float, elapsed_days: float, params: FSRSParameters = DEFAULT_PARAMETERS
) -> float:
    """Probability of recall after elapsed_days on the exponential forgetting curve."""
    stability = max(stability, params.min_stability)
    elapsed_days = max(0.0, elapsed_days)
    return _clamp(BASE_RETENTION ** (elapsed_days / stability), 0.0, 1.0)


def interval_days(stability: float, params: FSRSParameters = DEFAULT_PARAMETERS) -> int:
    """Whole days until recall probability falls to the requested retention."""
    days = stability * math.log(params.request_retention) / math.log(BASE_RETENTION)
    return int(_clamp(round(days), 1, params.maximum_interval))


def calculate_next_review(
    card: Flashcard,
    rating: int,
    now: datetime | None = None,
    params: FSRSParameters = DEFAULT_PARAMETERS,
) -> Flashcard:
    """Apply a review rating and return the rescheduled card.

    Args:
        card: Card being reviewed. It is not modified.
        rating: 1=again, 2=hard, 3=good, 4=easy
        now: Review time, defaults to the current time. A time before the
            card's last review is treated as the last review itself.
        params: Scheduler coefficients

    Returns:
        A new Flashcard with updated difficulty, stability, retrievability,
        last_review (= now) and next_review (always after now).
    """
    if rating not in RATINGS:
        raise ValidationError(f"rating must be one of {RATINGS}, got {rating!r}", field="rating")
    now = max(now or datetime.now(), card.last_review)

    elapsed_days = max(0.0, (now - card.last_review).total_seconds() / 86400)
    stability = _clamp(card.stability, params.min_stability, params.max_stability)
    difficulty = _clamp(card.difficulty, params.min_difficulty, params.max_difficulty)
    retrievability = retrievability_at(stability, elapsed_days, params)

    new_difficulty = _clamp(
        difficulty + params.difficulty_deltas[rating - 1],
        params.min_difficulty,
        params.max_difficulty,
    )

    if card.review_count == 0:
        new_stability = params.first_review_stability[rating - 1]
    elif rating == AGAIN:
        # Lapse: the memory is treated as mostly lost.
        new_stability = stability * params.lapse_multiplier
    else:
        ease = (params.max_difficulty + 1 - new_difficulty) / params.max_difficulty
        growth = params.growth_multipliers[rating - 1] * ease * (2 - retrievability)
        new_stability = stability * (1 + growth)
    new_stability = _clamp(new_stability, params.min_stability, params.max_stability)

    if rating == AGAIN:
        next_review = now + timedelta(minutes=params.relearning_minutes)
    else:
        next_review = now + timedelta(days=interval_days(new_stability, params))

    return replace(
        card,
        difficulty=round(new_difficulty, 4),
        stability=round(new_stability, 4),
        retrievability=round(retrievability, 4),
        last_review=now,
        next_review=next_review,
        review_count=card.review_count + 1,
        last_rating=rating,
        consecutive_failures=card.consecutive_failures + 1 if rating == AGAIN else 0,
    )
