"""Study log recording, daily streak tracking and study-cycle bookkeeping."""
import logging
from datetime import date, datetime, timedelta

from estudeaqui.db import get_connection, new_id
from estudeaqui.exceptions import NotFoundError, ValidationError
from estudeaqui.models import StudyLogEntry, UserStats
from estudeaqui.schemas import StudyLogInput, parse_study_log
from estudeaqui.sequence import adjust_item_time
from estudeaqui.subjects import get_subject, get_topic

logger = logging.getLogger(__name__)

LOG_COLUMNS = (
    "subject_id", "topic_id", "duration", "start_page", "end_page", "questions_total",
    "questions_correct", "source", "sequence_item_index", "notes",
)


def _row_to_entry(row) -> StudyLogEntry:
    return StudyLogEntry(
        id=row["id"],
        user_id=row["user_id"],
        subject_id=row["subject_id"],
        topic_id=row["topic_id"],
        date=row["date"],
        duration=row["duration"],
        start_page=row["start_page"],
        end_page=row["end_page"],
        questions_total=row["questions_total"],
        questions_correct=row["questions_correct"],
        source=row["source"],
        sequence_item_index=row["sequence_item_index"],
        notes=row["notes"] or "",
    )


def validate_log_entry(data: dict) -> StudyLogInput:
    return parse_study_log(data)


def _check_references(db_path: str, entry: StudyLogInput):
    subject = get_subject(db_path, entry.subject_id)
    topic = get_topic(db_path, entry.topic_id)
    if topic.subject_id != subject.id:
        raise ValidationError("topic does not belong to the selected subject", field="topic_id")
    return subject


def get_user_stats(db_path: str, user_id: str) -> UserStats:
    conn = get_connection(db_path)
    row = conn.execute("SELECT * FROM user_stats WHERE user_id = ?", (user_id,)).fetchone()
    conn.close()
    if row is None:
        return UserStats(user_id=user_id)
    return UserStats(user_id=user_id, streak=row["streak"], last_studied_date=row["last_studied_date"])


def next_streak(stats: UserStats, today: date) -> UserStats:
    """Streak after studying on ``today``: unchanged same day, +1 after yesterday, else 1."""
    last = date.fromisoformat(stats.last_studied_date[:10]) if stats.last_studied_date else None
    if last == today:
        return stats
    streak = stats.streak + 1 if last == today - timedelta(days=1) else 1
    return UserStats(user_id=stats.user_id, streak=streak, last_studied_date=today.isoformat())


def _save_user_stats(db_path: str, stats: UserStats) -> None:
    conn = get_connection(db_path)
    conn.execute(
        """INSERT INTO user_stats (user_id, streak, last_studied_date) VALUES (?, ?, ?)
        ON CONFLICT(user_id) DO UPDATE SET streak=excluded.streak,
        last_studied_date=excluded.last_studied_date""",
        (stats.user_id, stats.streak, stats.last_studied_date),
    )
    conn.commit()
    conn.close()


def add_study_log(db_path: str, user_id: str, data: dict, now: datetime | None = None) -> StudyLogEntry:
    """Validate and store a study session, then update streak and study cycle."""
    now = now or datetime.now()
    entry = validate_log_entry(data)
    subject = _check_references(db_path, entry)

    log = StudyLogEntry(id=new_id(), user_id=user_id, date=now.isoformat(), **entry.model_dump())
    conn = get_connection(db_path)
    conn.execute(
        f"""INSERT INTO study_logs (id, user_id, date, {', '.join(LOG_COLUMNS)})
        VALUES (?, ?, ?, {', '.join('?' for _ in LOG_COLUMNS)})""",
        (log.id, user_id, log.date, *(getattr(log, c) for c in LOG_COLUMNS)),
    )
    conn.commit()
    conn.close()

    stats = get_user_stats(db_path, user_id)
    updated = next_streak(stats, now.date())
    if updated is not stats:
        _save_user_stats(db_path, updated)

    if log.sequence_item_index is not None:
        adjust_item_time(
            db_path, user_id, log.sequence_item_index, log.subject_id, log.duration,
            study_goal=subject.study_duration,
        )
    logger.info("Logged %d min on subject %s (%s)", log.duration, subject.name, log.source)
    return log


def get_study_log(db_path: str, log_id: str) -> StudyLogEntry:
    conn = get_connection(db_path)
    row = conn.execute("SELECT * FROM study_logs WHERE id = ?", (log_id,)).fetchone()
    conn.close()
    if row is None:
        raise NotFoundError("study log", log_id)
    return _row_to_entry(row)


def get_study_logs(db_path: str, user_id: str) -> list[StudyLogEntry]:
    """All log entries for the user, newest first."""
    conn = get_connection(db_path)
    rows = conn.execute(
        "SELECT * FROM study_logs WHERE user_id = ? ORDER BY date DESC", (user_id,)
    ).fetchall()
    conn.close()
    return [_row_to_entry(r) for r in rows]


def update_study_log(db_path: str, log_id: str, data: dict) -> StudyLogEntry:
    original = get_study_log(db_path, log_id)
    merged = {c: getattr(original, c) for c in LOG_COLUMNS}
    merged.update(data)
    entry = validate_log_entry(merged)
    _check_references(db_path, entry)

    conn = get_connection(db_path)
    conn.execute(
        f"UPDATE study_logs SET {', '.join(f'{c} = ?' for c in LOG_COLUMNS)} WHERE id = ?",
        (*(getattr(entry, c) for c in LOG_COLUMNS), log_id),
    )
    conn.commit()
    conn.close()

    difference = entry.duration - original.duration
    if entry.sequence_item_index is not None and difference:
        adjust_item_time(
            db_path, original.user_id, entry.sequence_item_index, entry.subject_id, difference,
        )
    return get_study_log(db_path, log_id)


def delete_study_log(db_path: str, log_id: str) -> None:
    log = get_study_log(db_path, log_id)
    conn = get_connection(db_path)
    conn.execute("DELETE FROM study_logs WHERE id = ?", (log_id,))
    conn.commit()
    conn.close()
    if log.sequence_item_index is not None:
        adjust_item_time(
            db_path, log.user_id, log.sequence_item_index, log.subject_id, -log.duration,
        )
    logger.info("Deleted study log %s", log_id)
