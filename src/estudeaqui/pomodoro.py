"""Pomodoro timer state machine.

All transitions are pure functions taking a ``PomodoroState`` and returning
a new one. ``PomodoroState.key`` is the tick generation: every transition
that starts, stops or replaces a countdown bumps it, and ticks carrying an
older key are ignored.
"""
import json
import logging
import time
from dataclasses import asdict, replace
from typing import Callable, Optional

from estudeaqui.db import get_connection
from estudeaqui.exceptions import InvalidTransitionError, ValidationError
from estudeaqui.models import ACTIVE_STATUSES, PomodoroSettings, PomodoroState, PomodoroTask, Topic

logger = logging.getLogger(__name__)

FOCUS = "focus"
SHORT_BREAK = "short_break"
LONG_BREAK = "long_break"
PAUSED = "paused"
IDLE = "idle"
BREAK_STATUSES = (SHORT_BREAK, LONG_BREAK)
ITEM_TYPES = ("topic", "revision")


def _task_duration(settings: PomodoroSettings, index: int) -> int:
    if not settings.tasks:
        return 0
    return settings.tasks[index % len(settings.tasks)].duration


def initial_state(settings: PomodoroSettings) -> PomodoroState:
    return PomodoroState(status=IDLE, time_remaining=_task_duration(settings, 0))


def start(
    state: PomodoroState,
    settings: PomodoroSettings,
    item_id: Optional[str] = None,
    item_type: str = "topic",
    custom_duration: Optional[int] = None,
) -> PomodoroState:
    """Begin a focus segment, optionally tied to a topic or revision box."""
    if item_type not in ITEM_TYPES:
        raise ValidationError(f"must be one of {ITEM_TYPES}", field="item_type")
    if custom_duration is not None:
        if custom_duration <= 0:
            raise ValidationError("must be greater than 0", field="custom_duration")
        duration = custom_duration
    elif settings.tasks:
        duration = settings.tasks[0].duration
    else:
        raise ValidationError("configure at least one focus task", field="tasks")
    return replace(
        state,
        status=FOCUS,
        time_remaining=duration,
        current_cycle=0,
        current_task_index=0,
        associated_item_id=item_id,
        associated_item_type=item_type if item_id else None,
        previous_status=None,
        paused_time=None,
        key=state.key + 1,
        is_custom_duration=custom_duration is not None,
        original_duration=duration if custom_duration is not None else None,
    )


def tick(state: PomodoroState, key: Optional[int] = None) -> PomodoroState:
    """Count down one second. Stale keys and inactive states are no-ops."""
    if key is not None and key != state.key:
        return state
    if state.status not in ACTIVE_STATUSES or state.time_remaining <= 0:
        return state
    return replace(state, time_remaining=state.time_remaining - 1)


def is_segment_finished(state: PomodoroState) -> bool:
    return state.status in ACTIVE_STATUSES and state.time_remaining <= 0


def advance(state: PomodoroState, settings: PomodoroSettings) -> PomodoroState:
    """Move past the current segment: focus goes to a break, a break back to focus."""
    if state.status == FOCUS:
        cycle = state.current_cycle + 1
        if cycle % max(1, settings.cycles_until_long_break) == 0:
            status, duration = LONG_BREAK, settings.long_break_duration
        else:
            status, duration = SHORT_BREAK, settings.short_break_duration
        return replace(
            state,
            status=status,
            time_remaining=duration,
            current_cycle=cycle,
            pomodoros_completed_today=state.pomodoros_completed_today + 1,
            key=state.key + 1,
            is_custom_duration=False,
            original_duration=None,
        )
    if state.status in BREAK_STATUSES:
        if not settings.tasks:
            return reset(state, settings)
        next_index = (state.current_task_index + 1) % len(settings.tasks)
        return replace(
            state,
            status=FOCUS,
            time_remaining=settings.tasks[next_index].duration,
            current_task_index=next_index,
            key=state.key + 1,
            is_custom_duration=False,
            original_duration=None,
        )
    return state


def skip_to_break(state: PomodoroState, settings: PomodoroSettings) -> PomodoroState:
    if state.status != FOCUS:
        raise InvalidTransitionError(f"cannot skip to a break from {state.status}")
    return advance(state, settings)


def pause(state: PomodoroState, now: Optional[float] = None) -> PomodoroState:
    if state.status not in ACTIVE_STATUSES:
        return state
    return replace(
        state,
        status=PAUSED,
        previous_status=state.status,
        paused_time=now if now is not None else time.time(),
    )


def resume(state: PomodoroState) -> PomodoroState:
    if state.status != PAUSED:
        return state
    return replace(
        state,
        status=state.previous_status or FOCUS,
        previous_status=None,
        paused_time=None,
        key=state.key + 1,
    )


def reset(state: PomodoroState, settings: PomodoroSettings) -> PomodoroState:
    return PomodoroState(
        status=IDLE,
        time_remaining=_task_duration(settings, 0),
        pomodoros_completed_today=state.pomodoros_completed_today,
        key=state.key + 1,
    )


def segment_duration(state: PomodoroState, settings: PomodoroSettings) -> int:
    if state.is_custom_duration and state.original_duration:
        return state.original_duration
    status = state.previous_status if state.status == PAUSED else state.status
    if status == SHORT_BREAK:
        return settings.short_break_duration
    if status == LONG_BREAK:
        return settings.long_break_duration
    return _task_duration(settings, state.current_task_index)


def progress_fraction(state: PomodoroState, settings: PomodoroSettings) -> float:
    total = segment_duration(state, settings)
    if total <= 0:
        return 0.0
    return max(0.0, min(1.0, (total - state.time_remaining) / total))


def reduce(state: PomodoroState, action: dict, settings: PomodoroSettings) -> PomodoroState:
    kind = action.get("type")
    if kind == "start":
        return start(
            state, settings,
            item_id=action.get("item_id"),
            item_type=action.get("item_type", "topic"),
            custom_duration=action.get("custom_duration"),
        )
    if kind == "tick":
        return tick(state, action.get("key"))
    if kind == "advance":
        return advance(state, settings)
    if kind == "skip_to_break":
        return skip_to_break(state, settings)
    if kind == "pause":
        return pause(state, action.get("now"))
    if kind == "resume":
        return resume(state)
    if kind == "reset":
        return reset(state, settings)
    raise ValidationError(f"unknown pomodoro action: {kind!r}", field="type")


class PomodoroTimer:
    """Holds the live timer state for one session and drives its transitions.

    ``on_focus_complete`` is called with the finished focus state whenever a
    focus segment ends, so the caller can offer to log the session.
    """

    def __init__(
        self,
        settings: PomodoroSettings,
        on_focus_complete: Optional[Callable[[PomodoroState], None]] = None,
        auto_advance: bool = True,
    ):
        self.settings = settings
        self.state = initial_state(settings)
        self.on_focus_complete = on_focus_complete
        self.auto_advance = auto_advance

    @property
    def generation(self) -> int:
        return self.state.key

    def dispatch(self, action: dict) -> PomodoroState:
        previous = self.state
        self.state = reduce(previous, action, self.settings)
        if previous.status == FOCUS and self.state.status in BREAK_STATUSES:
            logger.info(
                "Focus segment finished (cycle %d, item %s)",
                self.state.current_cycle, previous.associated_item_id,
            )
            if self.on_focus_complete:
                self.on_focus_complete(previous)
        return self.state

    def start(self, item_id=None, item_type="topic", custom_duration=None) -> PomodoroState:
        return self.dispatch({
            "type": "start", "item_id": item_id, "item_type": item_type,
            "custom_duration": custom_duration,
        })

    def tick(self, key: int) -> PomodoroState:
        if key != self.state.key:
            return self.state
        self.dispatch({"type": "tick", "key": key})
        if self.auto_advance and is_segment_finished(self.state):
            self.dispatch({"type": "advance"})
        return self.state

    def pause(self) -> PomodoroState:
        return self.dispatch({"type": "pause"})

    def resume(self) -> PomodoroState:
        return self.dispatch({"type": "resume"})

    def skip_to_break(self) -> PomodoroState:
        return self.dispatch({"type": "skip_to_break"})

    def stop(self) -> PomodoroState:
        return self.dispatch({"type": "reset"})


def build_pomodoro_log(state: PomodoroState, settings: PomodoroSettings, topic: Topic) -> dict:
    """Study log payload for a finished focus segment."""
    seconds = segment_duration(state, settings)
    return {
        "subject_id": topic.subject_id,
        "topic_id": topic.id,
        "duration": max(1, seconds // 60),
        "start_page": 0,
        "end_page": 0,
        "questions_total": 0,
        "questions_correct": 0,
        "source": "pomodoro",
    }


def validate_pomodoro_settings(settings: PomodoroSettings) -> None:
    if not settings.tasks:
        raise ValidationError("add at least one focus task", field="tasks")
    for task in settings.tasks:
        if not task.name.strip():
            raise ValidationError("task name is required", field="tasks")
        if task.duration <= 0:
            raise ValidationError(f"duration of {task.name!r} must be positive", field="tasks")
    if settings.short_break_duration <= 0:
        raise ValidationError("must be positive", field="short_break_duration")
    if settings.long_break_duration <= 0:
        raise ValidationError("must be positive", field="long_break_duration")
    if settings.cycles_until_long_break < 1:
        raise ValidationError("must be at least 1", field="cycles_until_long_break")


def load_pomodoro_settings(db_path: str, user_id: str) -> PomodoroSettings:
    conn = get_connection(db_path)
    row = conn.execute("SELECT * FROM pomodoro_settings WHERE user_id = ?", (user_id,)).fetchone()
    conn.close()
    if row is None:
        return PomodoroSettings()
    return PomodoroSettings(
        tasks=[PomodoroTask(**t) for t in json.loads(row["tasks"])],
        short_break_duration=row["short_break_duration"],
        long_break_duration=row["long_break_duration"],
        cycles_until_long_break=row["cycles_until_long_break"],
    )


def save_pomodoro_settings(db_path: str, user_id: str, settings: PomodoroSettings) -> None:
    validate_pomodoro_settings(settings)
    tasks = json.dumps([asdict(t) for t in settings.tasks])
    conn = get_connection(db_path)
    conn.execute(
        """INSERT INTO pomodoro_settings (user_id, tasks, short_break_duration,
        long_break_duration, cycles_until_long_break) VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(user_id) DO UPDATE SET tasks=excluded.tasks,
        short_break_duration=excluded.short_break_duration,
        long_break_duration=excluded.long_break_duration,
        cycles_until_long_break=excluded.cycles_until_long_break""",
        (user_id, tasks, settings.short_break_duration, settings.long_break_duration,
         settings.cycles_until_long_break),
    )
    conn.commit()
    conn.close()
    logger.info("Saved pomodoro settings for user %s", user_id)
