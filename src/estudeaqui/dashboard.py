"""Study statistics for the dashboard and its charts.

Everything except ``get_dashboard`` is a pure function of the subjects and
log entries passed in.
"""
import math
from datetime import date, timedelta

from estudeaqui.models import StudyLogEntry, Subject
from estudeaqui.study_log import get_study_logs, get_user_stats
from estudeaqui.subjects import get_subjects

WEEKDAY_LABELS = ["Seg", "Ter", "Qua", "Qui", "Sex", "Sáb", "Dom"]


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def time_by_subject(subjects: list[Subject], logs: list[StudyLogEntry]) -> list[dict]:
    totals = {}
    for log in logs:
        totals[log.subject_id] = totals.get(log.subject_id, 0) + log.duration
    return [
        {"subject_id": s.id, "name": s.name, "color": s.color, "minutes": totals[s.id]}
        for s in subjects
        if s.id in totals
    ]


def accuracy_by_subject(subjects: list[Subject], logs: list[StudyLogEntry]) -> list[dict]:
    results = []
    for subject in subjects:
        subject_logs = [log for log in logs if log.subject_id == subject.id]
        total = sum(log.questions_total for log in subject_logs)
        correct = sum(log.questions_correct for log in subject_logs)
        if total == 0:
            continue
        results.append({
            "subject_id": subject.id,
            "subject": subject.name,
            "color": subject.color,
            "accuracy": _round_half_up(correct / total * 100),
            "total_questions": total,
            "correct_questions": correct,
        })
    return results


def completion_ratio(subjects: list[Subject]) -> tuple[float, float]:
    """(completed, remaining) topic fractions. No topics at all counts as 0% done."""
    total = sum(len(s.topics) for s in subjects)
    if total == 0:
        return 0.0, 1.0
    completed = sum(1 for s in subjects for t in s.topics if t.is_completed)
    return completed / total, (total - completed) / total


def subject_topic_progress(subjects: list[Subject]) -> list[dict]:
    rows = []
    for s in subjects:
        total = len(s.topics)
        completed = sum(1 for t in s.topics if t.is_completed)
        rows.append({
            "subject_id": s.id,
            "name": s.name,
            "completed": completed,
            "total": total,
            "percent": _round_half_up(completed / total * 100) if total else 0,
        })
    return rows


def daily_study_time(logs: list[StudyLogEntry], today: date | None = None) -> list[dict]:
    """Minutes per calendar day for the last 7 days, oldest first, ending today."""
    today = today or date.today()
    days = []
    for offset in range(6, -1, -1):
        day = today - timedelta(days=offset)
        prefix = day.isoformat()
        minutes = sum(log.duration for log in logs if log.date.startswith(prefix))
        days.append({"date": prefix, "label": WEEKDAY_LABELS[day.weekday()], "minutes": minutes})
    return days


def time_today(logs: list[StudyLogEntry], today: date | None = None) -> int:
    prefix = (today or date.today()).isoformat()
    return sum(log.duration for log in logs if log.date.startswith(prefix))


def time_this_week(logs: list[StudyLogEntry], today: date | None = None) -> int:
    """Minutes since Monday of the current week."""
    today = today or date.today()
    monday = today - timedelta(days=today.weekday())
    return sum(
        log.duration for log in logs
        if monday.isoformat() <= log.date[:10] <= today.isoformat()
    )


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60}h {minutes % 60}m"


def get_dashboard(db_path: str, user_id: str, today: date | None = None) -> dict:
    subjects = get_subjects(db_path, user_id)
    logs = get_study_logs(db_path, user_id)
    completed, remaining = completion_ratio(subjects)
    stats = get_user_stats(db_path, user_id)
    return {
        "streak": stats.streak,
        "time_today": time_today(logs, today),
        "time_this_week": time_this_week(logs, today),
        "time_by_subject": time_by_subject(subjects, logs),
        "accuracy_by_subject": accuracy_by_subject(subjects, logs),
        "completion": {"completed": completed, "remaining": remaining},
        "topic_progress": subject_topic_progress(subjects),
        "daily_time": daily_study_time(logs, today),
    }
