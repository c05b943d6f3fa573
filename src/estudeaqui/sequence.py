"""Study cycle: an ordered rotation of subjects with per-slot study time."""
import json
import logging
from dataclasses import asdict

from estudeaqui.db import get_connection, new_id
from estudeaqui.exceptions import NotFoundError, ValidationError
from estudeaqui.models import StudySequence, StudySequenceItem

logger = logging.getLogger(__name__)


def _row_to_sequence(row) -> StudySequence:
    return StudySequence(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        items=[StudySequenceItem(**item) for item in json.loads(row["items"])],
        sequence_index=row["sequence_index"],
        restart_count=row["restart_count"],
    )


def _save(db_path: str, sequence: StudySequence) -> None:
    conn = get_connection(db_path)
    conn.execute(
        "UPDATE study_sequences SET items = ?, sequence_index = ?, restart_count = ? WHERE id = ?",
        (json.dumps([asdict(i) for i in sequence.items]), sequence.sequence_index,
         sequence.restart_count, sequence.id),
    )
    conn.commit()
    conn.close()


def save_study_sequence(db_path: str, user_id: str, name: str, subject_ids: list[str]) -> StudySequence:
    """Store a new sequence and make it the active one."""
    if not (name or "").strip():
        raise ValidationError("is required", field="name")
    if not subject_ids:
        raise ValidationError("add at least one subject to the sequence", field="items")
    sequence = StudySequence(
        id=new_id(),
        user_id=user_id,
        name=name.strip(),
        items=[StudySequenceItem(subject_id=s) for s in subject_ids],
    )
    conn = get_connection(db_path)
    conn.execute("UPDATE study_sequences SET is_active = 0 WHERE user_id = ?", (user_id,))
    conn.execute(
        """INSERT INTO study_sequences (id, user_id, name, items, sequence_index, restart_count,
        is_active) VALUES (?, ?, ?, ?, 0, 0, 1)""",
        (sequence.id, user_id, sequence.name, json.dumps([asdict(i) for i in sequence.items])),
    )
    conn.commit()
    conn.close()
    logger.info("Saved study sequence %s with %d items", sequence.id, len(sequence.items))
    return sequence


def update_study_sequence(
    db_path: str, sequence_id: str, subject_ids: list[str], name: str | None = None
) -> StudySequence:
    """Replace the slots of a saved sequence, reordering, adding or removing subjects.

    Time already studied follows its subject: each new slot takes over the
    first unused old slot of the same subject. Slots that are new start at
    zero and the position goes back to the first slot.
    """
    if not subject_ids:
        raise ValidationError("add at least one subject to the sequence", field="items")
    if name is not None and not name.strip():
        raise ValidationError("is required", field="name")
    sequence = get_sequence(db_path, sequence_id)

    unused = list(sequence.items)
    items = []
    for subject_id in subject_ids:
        match = next((i for i in unused if i.subject_id == subject_id), None)
        if match is not None:
            unused.remove(match)
            items.append(match)
        else:
            items.append(StudySequenceItem(subject_id=subject_id))
    sequence.items = items
    sequence.sequence_index = 0
    _save(db_path, sequence)
    if name is not None:
        sequence.name = name.strip()
        conn = get_connection(db_path)
        conn.execute("UPDATE study_sequences SET name = ? WHERE id = ?", (sequence.name, sequence_id))
        conn.commit()
        conn.close()
    logger.info("Updated study sequence %s: %d items", sequence_id, len(items))
    return sequence


def move_sequence_item(db_path: str, sequence_id: str, from_index: int, to_index: int) -> StudySequence:
    """Move one slot to another position, keeping its studied time.

    Like any edit, this sends the position back to the first slot.
    """
    sequence = get_sequence(db_path, sequence_id)
    size = len(sequence.items)
    if not 0 <= from_index < size:
        raise ValidationError(f"no slot at position {from_index}", field="from_index")
    if not 0 <= to_index < size:
        raise ValidationError(f"no slot at position {to_index}", field="to_index")
    item = sequence.items.pop(from_index)
    sequence.items.insert(to_index, item)
    sequence.sequence_index = 0
    _save(db_path, sequence)
    return sequence


def get_sequence(db_path: str, sequence_id: str) -> StudySequence:
    conn = get_connection(db_path)
    row = conn.execute("SELECT * FROM study_sequences WHERE id = ?", (sequence_id,)).fetchone()
    conn.close()
    if row is None:
        raise NotFoundError("study sequence", sequence_id)
    return _row_to_sequence(row)


def get_active_sequence(db_path: str, user_id: str) -> StudySequence | None:
    conn = get_connection(db_path)
    row = conn.execute(
        "SELECT * FROM study_sequences WHERE user_id = ? AND is_active = 1", (user_id,)
    ).fetchone()
    conn.close()
    return _row_to_sequence(row) if row else None


def list_sequences(db_path: str, user_id: str) -> list[StudySequence]:
    conn = get_connection(db_path)
    rows = conn.execute(
        "SELECT * FROM study_sequences WHERE user_id = ? ORDER BY rowid", (user_id,)
    ).fetchall()
    conn.close()
    return [_row_to_sequence(r) for r in rows]


def load_sequence(db_path: str, sequence_id: str) -> StudySequence:
    """Activate a saved sequence with its progress cleared."""
    sequence = get_sequence(db_path, sequence_id)
    for item in sequence.items:
        item.total_time_studied = 0
    sequence.sequence_index = 0
    conn = get_connection(db_path)
    conn.execute("UPDATE study_sequences SET is_active = 0 WHERE user_id = ?", (sequence.user_id,))
    conn.execute("UPDATE study_sequences SET is_active = 1 WHERE id = ?", (sequence_id,))
    conn.commit()
    conn.close()
    _save(db_path, sequence)
    return sequence


def delete_sequence(db_path: str, sequence_id: str) -> None:
    conn = get_connection(db_path)
    cur = conn.execute("DELETE FROM study_sequences WHERE id = ?", (sequence_id,))
    conn.commit()
    conn.close()
    if cur.rowcount == 0:
        raise NotFoundError("study sequence", sequence_id)


def _require_active(db_path: str, user_id: str) -> StudySequence:
    sequence = get_active_sequence(db_path, user_id)
    if sequence is None:
        raise NotFoundError("active study sequence", user_id)
    return sequence


def current_sequence_item(sequence: StudySequence) -> StudySequenceItem | None:
    if 0 <= sequence.sequence_index < len(sequence.items):
        return sequence.items[sequence.sequence_index]
    return None


def advance_sequence(db_path: str, user_id: str) -> StudySequence:
    # May move one past the end to signal the cycle is done.
    sequence = _require_active(db_path, user_id)
    sequence.sequence_index = min(sequence.sequence_index + 1, len(sequence.items))
    _save(db_path, sequence)
    return sequence


def reset_sequence(db_path: str, user_id: str) -> StudySequence:
    sequence = _require_active(db_path, user_id)
    for item in sequence.items:
        item.total_time_studied = 0
    sequence.sequence_index = 0
    sequence.restart_count += 1
    _save(db_path, sequence)
    logger.info("Restarted study sequence %s (restart %d)", sequence.id, sequence.restart_count)
    return sequence


def adjust_item_time(
    db_path: str,
    user_id: str,
    index: int,
    subject_id: str,
    delta_minutes: int,
    study_goal: int | None = None,
) -> StudySequence | None:
    """Add (or remove) study minutes on one sequence slot.

    The slot must belong to ``subject_id``; otherwise nothing changes and None
    is returned. When the current slot reaches its subject's goal the
    sequence moves on.
    """
    sequence = get_active_sequence(db_path, user_id)
    if sequence is None or not 0 <= index < len(sequence.items):
        return None
    item = sequence.items[index]
    if item.subject_id != subject_id:
        return None
    item.total_time_studied = max(0, item.total_time_studied + delta_minutes)
    if (
        delta_minutes > 0
        and index == sequence.sequence_index
        and study_goal
        and item.total_time_studied >= study_goal
    ):
        sequence.sequence_index += 1
    _save(db_path, sequence)
    return sequence
