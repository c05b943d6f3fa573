"""Subject and topic management."""
import logging
from datetime import datetime

from estudeaqui.db import get_connection, new_id
from estudeaqui.exceptions import NotFoundError, ValidationError
from estudeaqui.models import KNOWLEDGE_LEVELS, Subject, Topic

logger = logging.getLogger(__name__)

DEFAULT_COLORS = ["#2563EB", "#10B981", "#F59E0B", "#8B5CF6", "#EF4444", "#6B7280", "#EC4899", "#3B82F6"]

SUBJECT_FIELDS = {
    "name", "color", "description", "study_duration", "material_url", "weight", "knowledge_level",
    "weekly_hours",
}
TOPIC_FIELDS = {"name", "description"}


def _row_to_topic(row) -> Topic:
    return Topic(
        id=row["id"],
        subject_id=row["subject_id"],
        name=row["name"],
        order=row["topic_order"],
        description=row["description"] or "",
        is_completed=bool(row["is_completed"]),
        completion_date=row["completion_date"],
    )


def _row_to_subject(row, topics: list[Topic]) -> Subject:
    return Subject(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        color=row["color"],
        description=row["description"] or "",
        study_duration=row["study_duration"],
        material_url=row["material_url"],
        revision_progress=row["revision_progress"],
        weight=row["weight"] if row["weight"] is not None else 1.0,
        knowledge_level=row["knowledge_level"] or "intermediate",
        weekly_hours=row["weekly_hours"],
        topics=topics,
    )


def validate_subject_fields(data: dict) -> None:
    if "name" in data and not (data["name"] or "").strip():
        raise ValidationError("is required", field="name")
    if "color" in data and not (data["color"] or "").strip():
        raise ValidationError("is required", field="color")
    duration = data.get("study_duration")
    if duration is not None and duration < 1:
        raise ValidationError("must be greater than 0", field="study_duration")
    weight = data.get("weight")
    if weight is not None and weight <= 0:
        raise ValidationError("must be greater than 0", field="weight")
    if "knowledge_level" in data and data["knowledge_level"] not in KNOWLEDGE_LEVELS:
        raise ValidationError(f"must be one of {KNOWLEDGE_LEVELS}", field="knowledge_level")
    hours = data.get("weekly_hours")
    if hours is not None and hours < 0:
        raise ValidationError("cannot be negative", field="weekly_hours")


def _load_topics(conn, subject_id: str) -> list[Topic]:
    rows = conn.execute(
        "SELECT * FROM topics WHERE subject_id = ? ORDER BY topic_order", (subject_id,)
    ).fetchall()
    return [_row_to_topic(r) for r in rows]


def add_subject(
    db_path: str,
    user_id: str,
    name: str,
    color: str | None = None,
    description: str = "",
    study_duration: int | None = None,
    material_url: str | None = None,
    weight: float = 1.0,
    knowledge_level: str = "intermediate",
) -> Subject:
    conn = get_connection(db_path)
    if color is None:
        count = conn.execute("SELECT COUNT(*) FROM subjects WHERE user_id = ?", (user_id,)).fetchone()[0]
        color = DEFAULT_COLORS[count % len(DEFAULT_COLORS)]
    try:
        validate_subject_fields({
            "name": name, "color": color, "study_duration": study_duration, "weight": weight,
            "knowledge_level": knowledge_level,
        })
    except ValidationError:
        conn.close()
        raise
    subject = Subject(
        id=new_id(), user_id=user_id, name=name.strip(), color=color,
        description=description, study_duration=study_duration, material_url=material_url,
        weight=weight, knowledge_level=knowledge_level,
    )
    conn.execute(
        """INSERT INTO subjects (id, user_id, name, color, description, study_duration,
        material_url, revision_progress, weight, knowledge_level, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?, ?, ?)""",
        (subject.id, user_id, subject.name, color, description, study_duration, material_url,
         weight, knowledge_level, datetime.now().isoformat()),
    )
    conn.commit()
    conn.close()
    logger.info("Added subject %s (%s)", subject.id, subject.name)
    return subject


def get_subject(db_path: str, subject_id: str) -> Subject:
    conn = get_connection(db_path)
    row = conn.execute("SELECT * FROM subjects WHERE id = ?", (subject_id,)).fetchone()
    if row is None:
        conn.close()
        raise NotFoundError("subject", subject_id)
    subject = _row_to_subject(row, _load_topics(conn, subject_id))
    conn.close()
    return subject


def get_subjects(db_path: str, user_id: str) -> list[Subject]:
    conn = get_connection(db_path)
    rows = conn.execute(
        "SELECT * FROM subjects WHERE user_id = ? ORDER BY created_at, rowid", (user_id,)
    ).fetchall()
    subjects = [_row_to_subject(r, _load_topics(conn, r["id"])) for r in rows]
    conn.close()
    return subjects


def update_subject(db_path: str, subject_id: str, **data) -> Subject:
    unknown = set(data) - SUBJECT_FIELDS
    if unknown:
        raise ValidationError(f"unknown fields: {', '.join(sorted(unknown))}")
    validate_subject_fields(data)
    get_subject(db_path, subject_id)
    if data:
        assignments = ", ".join(f"{k} = ?" for k in data)
        conn = get_connection(db_path)
        conn.execute(
            f"UPDATE subjects SET {assignments} WHERE id = ?",
            (*data.values(), subject_id),
        )
        conn.commit()
        conn.close()
    return get_subject(db_path, subject_id)


def delete_subject(db_path: str, subject_id: str) -> None:
    conn = get_connection(db_path)
    cur = conn.execute("DELETE FROM subjects WHERE id = ?", (subject_id,))
    conn.commit()
    conn.close()
    if cur.rowcount == 0:
        raise NotFoundError("subject", subject_id)
    logger.info("Deleted subject %s", subject_id)


def save_revision_progress(db_path: str, subject_id: str, progress: int) -> None:
    conn = get_connection(db_path)
    cur = conn.execute(
        "UPDATE subjects SET revision_progress = ? WHERE id = ?", (progress, subject_id)
    )
    conn.commit()
    conn.close()
    if cur.rowcount == 0:
        raise NotFoundError("subject", subject_id)


def add_topic(db_path: str, subject_id: str, name: str, description: str = "") -> Topic:
    if not (name or "").strip():
        raise ValidationError("is required", field="name")
    subject = get_subject(db_path, subject_id)
    order = max((t.order for t in subject.topics), default=-1) + 1
    topic = Topic(
        id=new_id(), subject_id=subject_id, name=name.strip(), order=order,
        description=description,
    )
    conn = get_connection(db_path)
    conn.execute(
        """INSERT INTO topics (id, subject_id, name, topic_order, description, is_completed)
        VALUES (?, ?, ?, ?, ?, 0)""",
        (topic.id, subject_id, topic.name, order, description),
    )
    conn.commit()
    conn.close()
    return topic


def get_topic(db_path: str, topic_id: str) -> Topic:
    conn = get_connection(db_path)
    row = conn.execute("SELECT * FROM topics WHERE id = ?", (topic_id,)).fetchone()
    conn.close()
    if row is None:
        raise NotFoundError("topic", topic_id)
    return _row_to_topic(row)


def update_topic(db_path: str, topic_id: str, **data) -> Topic:
    unknown = set(data) - TOPIC_FIELDS
    if unknown:
        raise ValidationError(f"unknown fields: {', '.join(sorted(unknown))}")
    if "name" in data and not (data["name"] or "").strip():
        raise ValidationError("is required", field="name")
    get_topic(db_path, topic_id)
    if data:
        assignments = ", ".join(f"{k} = ?" for k in data)
        conn = get_connection(db_path)
        conn.execute(f"UPDATE topics SET {assignments} WHERE id = ?", (*data.values(), topic_id))
        conn.commit()
        conn.close()
    return get_topic(db_path, topic_id)


def toggle_topic_completed(db_path: str, topic_id: str) -> Topic:
    topic = get_topic(db_path, topic_id)
    completed = not topic.is_completed
    completion_date = datetime.now().isoformat() if completed else None
    conn = get_connection(db_path)
    conn.execute(
        "UPDATE topics SET is_completed = ?, completion_date = ? WHERE id = ?",
        (int(completed), completion_date, topic_id),
    )
    conn.commit()
    conn.close()
    return get_topic(db_path, topic_id)


def delete_topic(db_path: str, topic_id: str) -> None:
    """Delete a topic, renumber the remaining ones and clamp revision progress."""
    from estudeaqui.revision import clamp_progress

    topic = get_topic(db_path, topic_id)
    conn = get_connection(db_path)
    conn.execute("DELETE FROM topics WHERE id = ?", (topic_id,))
    remaining = _load_topics(conn, topic.subject_id)
    for index, t in enumerate(remaining):
        conn.execute("UPDATE topics SET topic_order = ? WHERE id = ?", (index, t.id))
    conn.commit()
    conn.close()
    subject = get_subject(db_path, topic.subject_id)
    progress = clamp_progress(subject, subject.revision_progress)
    if progress != subject.revision_progress:
        save_revision_progress(db_path, subject.id, progress)
    logger.info("Deleted topic %s from subject %s", topic_id, topic.subject_id)
