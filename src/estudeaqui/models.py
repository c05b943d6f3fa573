"""Data classes for the study domain model."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

POMODORO_STATUSES = ("focus", "short_break", "long_break", "paused", "idle")
ACTIVE_STATUSES = ("focus", "short_break", "long_break")
KNOWLEDGE_LEVELS = ("beginner", "intermediate", "advanced")
PLAN_MODES = ("automatic", "manual")


@dataclass
class Topic:
    id: str
    subject_id: str
    name: str
    order: int
    description: str = ""
    is_completed: bool = False
    completion_date: Optional[str] = None


@dataclass
class Subject:
    id: str
    name: str
    color: str
    user_id: str = "local"
    description: str = ""
    study_duration: Optional[int] = None  # minutes
    material_url: Optional[str] = None
    revision_progress: int = 0
    weight: float = 1.0
    knowledge_level: str = "intermediate"
    weekly_hours: Optional[float] = None
    topics: list[Topic] = field(default_factory=list)


@dataclass
class StudyLogEntry:
    id: str
    subject_id: str
    topic_id: str
    date: str
    duration: int  # minutes
    user_id: str = "local"
    start_page: int = 0
    end_page: int = 0
    questions_total: int = 0
    questions_correct: int = 0
    source: str = "manual"
    sequence_item_index: Optional[int] = None
    notes: str = ""


@dataclass
class PomodoroTask:
    id: str
    name: str
    duration: int  # seconds


@dataclass
class PomodoroSettings:
    tasks: list[PomodoroTask] = field(default_factory=lambda: [
        PomodoroTask(id="task-1", name="Questões", duration=30 * 60),
        PomodoroTask(id="task-2", name="Anki", duration=10 * 60),
        PomodoroTask(id="task-3", name="Lei Seca", duration=20 * 60),
    ])
    short_break_duration: int = 5 * 60
    long_break_duration: int = 15 * 60
    cycles_until_long_break: int = 4


@dataclass(frozen=True)
class PomodoroState:
    status: str = "idle"
    time_remaining: int = 0  # seconds
    current_cycle: int = 0
    pomodoros_completed_today: int = 0
    associated_item_id: Optional[str] = None
    associated_item_type: Optional[str] = None  # "topic" | "revision"
    current_task_index: int = 0
    previous_status: Optional[str] = None
    paused_time: Optional[float] = None
    key: int = 0  # tick generation
    is_custom_duration: bool = False
    original_duration: Optional[int] = None


@dataclass
class Flashcard:
    id: str
    user_id: str
    question: str
    answer: str
    difficulty: float
    stability: float
    retrievability: float
    last_review: datetime
    next_review: datetime
    created_at: datetime
    review_count: int = 0
    last_rating: int = 0
    consecutive_failures: int = 0


@dataclass
class ReviewSession:
    id: str
    user_id: str
    flashcard_ids: list[str]
    start_time: str
    current_index: int = 0
    completed: bool = False
    total_cards: int = 0
    correct_count: int = 0
    time_spent: float = 0.0  # seconds


@dataclass
class StudySequenceItem:
    subject_id: str
    total_time_studied: int = 0  # minutes


@dataclass
class StudySequence:
    id: str
    user_id: str
    name: str
    items: list[StudySequenceItem] = field(default_factory=list)
    sequence_index: int = 0
    restart_count: int = 0


@dataclass
class UserStats:
    user_id: str
    streak: int = 0
    last_studied_date: Optional[str] = None


@dataclass
class SchedulePlan:
    id: str
    user_id: str
    name: str
    total_weekly_hours: float
    session_duration: int  # minutes
    mode: str = "automatic"  # "automatic" | "manual"
    sessions_per_subject: dict[str, int] = field(default_factory=dict)
    created_at: Optional[str] = None


@dataclass
class SubjectTemplate:
    id: str
    user_id: str
    name: str
    subjects: list[dict] = field(default_factory=list)
    created_at: Optional[str] = None
