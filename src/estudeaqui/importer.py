"""Subject templates: subjects with their topics, from files or saved per user.

A template is a dict with a ``subjects`` list. Each subject entry carries
the subject fields plus a ``topics`` list whose items are either a topic
name or a ``{"name", "description"}`` mapping.
"""
import json
import logging
from datetime import datetime
from pathlib import Path

import yaml

from estudeaqui.db import get_connection, new_id
from estudeaqui.exceptions import NotFoundError, ValidationError
from estudeaqui.models import Subject, SubjectTemplate
from estudeaqui.subjects import add_subject, add_topic, get_subject, get_subjects, validate_subject_fields

logger = logging.getLogger(__name__)

NUMERIC_FIELDS = ("study_duration", "weight")


def _topic_fields(topic) -> tuple[str, str]:
    if isinstance(topic, str):
        return topic, ""
    return topic.get("name", ""), topic.get("description", "")


def _validate_subject_entry(entry, position: int) -> None:
    label = f"subject #{position}"
    if not isinstance(entry, dict):
        raise ValidationError(f"{label} must be a mapping", field="subjects")
    name = entry.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValidationError(f"{label} needs a name", field="subjects")
    label = f"subject {name.strip()!r}"
    for key in NUMERIC_FIELDS:
        value = entry.get(key)
        if value is not None and (isinstance(value, bool) or not isinstance(value, (int, float))):
            raise ValidationError(f"{label}: {key} must be a number", field="subjects")
    fields = {
        key: entry[key] for key in ("color", "study_duration", "weight", "knowledge_level")
        if entry.get(key) is not None
    }
    try:
        validate_subject_fields(fields)
    except ValidationError as e:
        raise ValidationError(f"{label}: {e.field} {e.message}", field="subjects") from e

    topics = entry.get("topics", [])
    if not isinstance(topics, list):
        raise ValidationError(f"{label}: topics must be a list", field="topics")
    for index, topic in enumerate(topics, 1):
        if not isinstance(topic, (str, dict)):
            raise ValidationError(f"{label}: topic #{index} must be a name or a mapping", field="topics")
        topic_name, _ = _topic_fields(topic)
        if not isinstance(topic_name, str) or not topic_name.strip():
            raise ValidationError(f"{label}: topic #{index} needs a name", field="topics")


def validate_template(data) -> dict:
    """Check every subject and topic of a template before anything is written."""
    if not isinstance(data, dict) or not isinstance(data.get("subjects"), list):
        raise ValidationError("template must define a 'subjects' list", field="subjects")
    for position, entry in enumerate(data["subjects"], 1):
        _validate_subject_entry(entry, position)
    return data


def read_template(file_path: str) -> dict:
    path = Path(file_path)
    suffix = path.suffix.lower()

    if suffix == ".json":
        data = json.loads(path.read_text(encoding="utf-8"))
    elif suffix in (".yaml", ".yml"):
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    else:
        raise ValidationError(f"unsupported template format: {suffix or path.name}", field="file")
    return validate_template(data)


def apply_template(db_path: str, user_id: str, template: dict) -> list[Subject]:
    """Create every subject and topic of the template for the user.

    The whole template is validated first, so a bad entry leaves the
    user's subjects untouched.
    """
    validate_template(template)
    created = []
    for entry in template["subjects"]:
        subject = add_subject(
            db_path,
            user_id,
            entry["name"],
            color=entry.get("color"),
            description=entry.get("description", ""),
            study_duration=entry.get("study_duration"),
            material_url=entry.get("material_url"),
            weight=entry.get("weight") or 1.0,
            knowledge_level=entry.get("knowledge_level") or "intermediate",
        )
        # Topics are added in file order, which becomes their revision order.
        for topic in entry.get("topics", []):
            name, description = _topic_fields(topic)
            add_topic(db_path, subject.id, name, description)
        created.append(get_subject(db_path, subject.id))
    return created


def import_template(db_path: str, user_id: str, file_path: str) -> dict:
    template = read_template(file_path)
    subjects = apply_template(db_path, user_id, template)
    logger.info("Imported template %s: %d subjects", Path(file_path).name, len(subjects))
    return {
        "filename": Path(file_path).name,
        "name": template.get("name", Path(file_path).stem),
        "subjects": len(subjects),
        "topics": sum(len(s.topics) for s in subjects),
    }


def _row_to_template(row) -> SubjectTemplate:
    return SubjectTemplate(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        subjects=json.loads(row["subjects"]),
        created_at=row["created_at"],
    )


def save_template(db_path: str, user_id: str, name: str, subjects: list[dict]) -> SubjectTemplate:
    if not (name or "").strip():
        raise ValidationError("is required", field="name")
    validate_template({"subjects": subjects})
    template = SubjectTemplate(
        id=new_id(), user_id=user_id, name=name.strip(), subjects=subjects,
        created_at=datetime.now().isoformat(),
    )
    conn = get_connection(db_path)
    conn.execute(
        "INSERT INTO subject_templates (id, user_id, name, subjects, created_at) VALUES (?, ?, ?, ?, ?)",
        (template.id, user_id, template.name, json.dumps(subjects), template.created_at),
    )
    conn.commit()
    conn.close()
    logger.info("Saved template %s (%s) with %d subjects", template.id, template.name, len(subjects))
    return template


def subject_to_template_entry(subject: Subject) -> dict:
    return {
        "name": subject.name,
        "color": subject.color,
        "description": subject.description,
        "study_duration": subject.study_duration,
        "material_url": subject.material_url,
        "weight": subject.weight,
        "knowledge_level": subject.knowledge_level,
        "topics": [{"name": t.name, "description": t.description} for t in subject.topics],
    }


def save_subjects_as_template(db_path: str, user_id: str, name: str) -> SubjectTemplate:
    """Snapshot the user's current subjects and topics as a reusable template."""
    subjects = get_subjects(db_path, user_id)
    if not subjects:
        raise ValidationError("there are no subjects to save", field="subjects")
    return save_template(db_path, user_id, name, [subject_to_template_entry(s) for s in subjects])


def get_template(db_path: str, template_id: str) -> SubjectTemplate:
    conn = get_connection(db_path)
    row = conn.execute("SELECT * FROM subject_templates WHERE id = ?", (template_id,)).fetchone()
    conn.close()
    if row is None:
        raise NotFoundError("template", template_id)
    return _row_to_template(row)


def list_templates(db_path: str, user_id: str) -> list[SubjectTemplate]:
    conn = get_connection(db_path)
    rows = conn.execute(
        "SELECT * FROM subject_templates WHERE user_id = ? ORDER BY created_at, rowid", (user_id,)
    ).fetchall()
    conn.close()
    return [_row_to_template(r) for r in rows]


def delete_template(db_path: str, template_id: str) -> None:
    conn = get_connection(db_path)
    cur = conn.execute("DELETE FROM subject_templates WHERE id = ?", (template_id,))
    conn.commit()
    conn.close()
    if cur.rowcount == 0:
        raise NotFoundError("template", template_id)
    logger.info("Deleted template %s", template_id)


def apply_saved_template(db_path: str, user_id: str, template_id: str) -> list[Subject]:
    template = get_template(db_path, template_id)
    subjects = apply_template(db_path, user_id, {"subjects": template.subjects})
    logger.info("Applied template %s: %d subjects", template.name, len(subjects))
    return subjects
