"""Weekly schedule planning: split a week of study across subjects.

Two splits are offered. ``distribute_sessions`` cuts the week into
fixed-length sessions and hands them out by knowledge level: beginners get
half, intermediates most of what is left and advanced subjects the rest.
``distribute_hours`` splits the hours by subject weight and gives any
unassigned time to the least experienced subjects.
"""
import json
import logging
import math
from datetime import datetime

from estudeaqui.db import get_connection, new_id
from estudeaqui.exceptions import NotFoundError, ValidationError
from estudeaqui.models import KNOWLEDGE_LEVELS, PLAN_MODES, SchedulePlan, Subject
from estudeaqui.subjects import get_subjects, update_subject

logger = logging.getLogger(__name__)

# Shares in percent, applied with ceiling on integer session counts.
BEGINNER_SHARE = 50
INTERMEDIATE_SHARE = 70


def _round_half_up(value: float, digits: int = 0) -> float:
    scale = 10 ** digits
    return math.floor(value * scale + 0.5) / scale


def _ceil_share(sessions: int, percent: int) -> int:
    return -(-sessions * percent // 100)


def max_sessions(total_weekly_hours: float, session_duration: int) -> int:
    """Number of whole sessions of ``session_duration`` minutes that fit in the week."""
    if session_duration <= 0 or total_weekly_hours <= 0:
        return 0
    return int(_round_half_up(total_weekly_hours * 60 / session_duration))


def sessions_to_hours(sessions: int, session_duration: int) -> float:
    return round(sessions * session_duration / 60, 2)


def _by_level(subjects: list[Subject]) -> dict[str, list[Subject]]:
    groups = {level: [] for level in KNOWLEDGE_LEVELS}
    for subject in subjects:
        level = subject.knowledge_level if subject.knowledge_level in groups else "intermediate"
        groups[level].append(subject)
    return groups


def _split_evenly(subjects: list[Subject], sessions: int, result: dict[str, int]) -> None:
    share, remainder = divmod(sessions, len(subjects))
    for index, subject in enumerate(subjects):
        result[subject.id] = share + (1 if index < remainder else 0)


def distribute_sessions(
    subjects: list[Subject], total_weekly_hours: float, session_duration: int
) -> dict[str, int]:
    """Sessions per subject id, always summing to ``max_sessions``.

    Beginners share ceil(50%) of the sessions, intermediates ceil(70%) of
    what is left and advanced subjects the remainder. The last level that
    has subjects absorbs whatever the earlier shares did not take.
    """
    result = {s.id: 0 for s in subjects}
    remaining = max_sessions(total_weekly_hours, session_duration)
    if not subjects or remaining == 0:
        return result

    groups = _by_level(subjects)
    present = [level for level in KNOWLEDGE_LEVELS if groups[level]]
    shares = {"beginner": BEGINNER_SHARE, "intermediate": INTERMEDIATE_SHARE}
    for level in present:
        if level == present[-1]:
            allotted = remaining
        else:
            allotted = min(remaining, _ceil_share(remaining, shares[level]))
        _split_evenly(groups[level], allotted, result)
        remaining -= allotted
    return result


def distribute_hours(subjects: list[Subject], total_weekly_hours: float) -> dict[str, float]:
    """Hours per subject id, proportional to weight and rounded to 0.1.

    Every subject starts from an equal share multiplied by its weight. If
    the weights leave hours unassigned, they go in equal parts to the
    weight >= 1 subjects of the least experienced level present.
    """
    if not subjects or total_weekly_hours <= 0:
        return {s.id: 0.0 for s in subjects}

    base = total_weekly_hours / len(subjects)
    hours = {s.id: base * (s.weight if s.weight > 0 else 1) for s in subjects}

    leftover = total_weekly_hours - sum(hours.values())
    if leftover > 0:
        groups = _by_level([s for s in subjects if s.weight >= 1])
        for level in KNOWLEDGE_LEVELS:
            if groups[level]:
                for subject in groups[level]:
                    hours[subject.id] += leftover / len(groups[level])
                break
    return {subject_id: _round_half_up(value, 1) for subject_id, value in hours.items()}


def _row_to_plan(row) -> SchedulePlan:
    return SchedulePlan(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        total_weekly_hours=row["total_weekly_hours"],
        session_duration=row["session_duration"],
        mode=row["mode"],
        sessions_per_subject=json.loads(row["sessions_per_subject"] or "{}"),
        created_at=row["created_at"],
    )


def _validate_manual_sessions(
    sessions: dict | None, subjects: list[Subject], total: int
) -> dict[str, int]:
    if not sessions:
        raise ValidationError("manual plans need sessions per subject", field="sessions_per_subject")
    known = {s.id for s in subjects}
    unknown = set(sessions) - known
    if unknown:
        raise ValidationError(
            f"unknown subjects: {', '.join(sorted(unknown))}", field="sessions_per_subject"
        )
    for subject_id, count in sessions.items():
        if not isinstance(count, int) or count < 0:
            raise ValidationError(
                f"sessions for {subject_id} must be a non-negative integer",
                field="sessions_per_subject",
            )
    if sum(sessions.values()) > total:
        raise ValidationError(
            f"{sum(sessions.values())} sessions do not fit in {total} weekly slots",
            field="sessions_per_subject",
        )
    return {s.id: sessions.get(s.id, 0) for s in subjects}


def save_schedule_plan(
    db_path: str,
    user_id: str,
    name: str,
    total_weekly_hours: float,
    session_duration: int,
    mode: str = "automatic",
    sessions_per_subject: dict[str, int] | None = None,
) -> SchedulePlan:
    """Compute (automatic) or check (manual) a plan for the user's subjects and store it."""
    if not (name or "").strip():
        raise ValidationError("is required", field="name")
    if total_weekly_hours is None or total_weekly_hours <= 0:
        raise ValidationError("must be greater than 0", field="total_weekly_hours")
    if session_duration is None or session_duration < 1:
        raise ValidationError("must be at least 1 minute", field="session_duration")
    if mode not in PLAN_MODES:
        raise ValidationError(f"must be one of {PLAN_MODES}", field="mode")

    subjects = get_subjects(db_path, user_id)
    if not subjects:
        raise ValidationError("add subjects before planning the week", field="subjects")
    if mode == "automatic":
        sessions = distribute_sessions(subjects, total_weekly_hours, session_duration)
    else:
        sessions = _validate_manual_sessions(
            sessions_per_subject, subjects, max_sessions(total_weekly_hours, session_duration)
        )

    plan = SchedulePlan(
        id=new_id(),
        user_id=user_id,
        name=name.strip(),
        total_weekly_hours=total_weekly_hours,
        session_duration=session_duration,
        mode=mode,
        sessions_per_subject=sessions,
        created_at=datetime.now().isoformat(),
    )
    conn = get_connection(db_path)
    conn.execute(
        """INSERT INTO schedule_plans (id, user_id, name, total_weekly_hours, session_duration,
        mode, sessions_per_subject, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
        (plan.id, user_id, plan.name, total_weekly_hours, session_duration, mode,
         json.dumps(sessions), plan.created_at),
    )
    conn.commit()
    conn.close()
    logger.info("Saved %s schedule plan %s (%d sessions)", mode, plan.id, sum(sessions.values()))
    return plan


def get_schedule_plan(db_path: str, plan_id: str) -> SchedulePlan:
    conn = get_connection(db_path)
    row = conn.execute("SELECT * FROM schedule_plans WHERE id = ?", (plan_id,)).fetchone()
    conn.close()
    if row is None:
        raise NotFoundError("schedule plan", plan_id)
    return _row_to_plan(row)


def list_schedule_plans(db_path: str, user_id: str) -> list[SchedulePlan]:
    conn = get_connection(db_path)
    rows = conn.execute(
        "SELECT * FROM schedule_plans WHERE user_id = ? ORDER BY created_at, rowid", (user_id,)
    ).fetchall()
    conn.close()
    return [_row_to_plan(r) for r in rows]


def delete_schedule_plan(db_path: str, plan_id: str) -> None:
    conn = get_connection(db_path)
    cur = conn.execute("DELETE FROM schedule_plans WHERE id = ?", (plan_id,))
    conn.commit()
    conn.close()
    if cur.rowcount == 0:
        raise NotFoundError("schedule plan", plan_id)


def apply_schedule_plan(db_path: str, plan_id: str) -> list[Subject]:
    """Write each subject's weekly hours from the plan's session counts.

    Subjects the plan does not mention (added after it was saved) get 0.
    """
    plan = get_schedule_plan(db_path, plan_id)
    updated = []
    for subject in get_subjects(db_path, plan.user_id):
        sessions = plan.sessions_per_subject.get(subject.id, 0)
        updated.append(update_subject(
            db_path, subject.id, weekly_hours=sessions_to_hours(sessions, plan.session_duration)
        ))
    logger.info("Applied schedule plan %s to %d subjects", plan_id, len(updated))
    return updated
