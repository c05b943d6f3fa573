"""Revision cycle sequencing over a subject's completed topics.

Each subject walks a fixed interleaving of topic orders. Only topics that
are already completed take part: entries of the table whose topic is not
done yet are skipped. ``revision_progress`` counts how many boxes of the
resulting walk have been revised; the box at that index is the current
one, earlier boxes are completed and later ones are waiting.
"""
import logging
from dataclasses import dataclass, replace

from estudeaqui.exceptions import InvalidTransitionError
from estudeaqui.models import Subject, Topic
from estudeaqui.subjects import get_subject, save_revision_progress

logger = logging.getLogger(__name__)

REVISION_SEQUENCE_VERSION = 1

# Topic orders in revision order. Topic 0 comes back most often and later
# topics join at decreasing frequency. Do not regenerate: stored progress
# counters index into the walk this table produces.
REVISION_SEQUENCE = (
    0, 1, 0, 2, 1, 3, 2, 4, 3, 0, 5, 4, 1, 6, 5, 2, 7, 6, 3, 8, 7, 4, 0, 9, 8, 5,
    1, 10, 9, 6, 2, 11, 10, 7, 3, 12, 11, 8, 4, 13, 12, 9, 5, 14, 13, 10, 6, 15,
    14, 11, 7, 16, 15, 12, 8, 17, 16, 13, 9, 18, 17, 15, 11, 19, 18, 15, 11, 20,
    19, 16, 12, 21, 20, 17, 13, 21, 20, 17, 13, 22, 21, 18, 14, 22, 21, 18, 14,
    23, 22, 19, 15,
)

COMPLETED = "completed"
CURRENT = "current"
WAITING = "waiting"


@dataclass(frozen=True)
class RevisionBox:
    index: int
    topic: Topic
    status: str


def build_revision_sequence(topics: list[Topic]) -> list[Topic]:
    completed = {t.order: t for t in topics if t.is_completed}
    return [completed[order] for order in REVISION_SEQUENCE if order in completed]


def revision_boxes(subject: Subject) -> list[RevisionBox]:
    boxes = []
    for index, topic in enumerate(build_revision_sequence(subject.topics)):
        if index < subject.revision_progress:
            status = COMPLETED
        elif index == subject.revision_progress:
            status = CURRENT
        else:
            status = WAITING
        boxes.append(RevisionBox(index=index, topic=topic, status=status))
    return boxes


def current_revision_topic(subject: Subject) -> Topic | None:
    sequence = build_revision_sequence(subject.topics)
    if 0 <= subject.revision_progress < len(sequence):
        return sequence[subject.revision_progress]
    return None


def is_cycle_complete(subject: Subject) -> bool:
    sequence = build_revision_sequence(subject.topics)
    return bool(sequence) and subject.revision_progress >= len(sequence)


def clamp_progress(subject: Subject, progress: int) -> int:
    return max(0, min(progress, len(build_revision_sequence(subject.topics))))


def toggle_revision_step(subject: Subject, index: int) -> Subject:
    """Complete the current box or undo the last completed one.

    Any other box is rejected with InvalidTransitionError.
    """
    length = len(build_revision_sequence(subject.topics))
    progress = subject.revision_progress
    if index == progress and index < length:
        return replace(subject, revision_progress=progress + 1)
    if index == progress - 1 and index >= 0:
        return replace(subject, revision_progress=progress - 1)
    raise InvalidTransitionError(
        f"revision box {index} cannot be toggled at progress {progress}"
    )


def set_revision_progress(db_path: str, subject_id: str, progress: int) -> Subject:
    subject = get_subject(db_path, subject_id)
    progress = clamp_progress(subject, progress)
    save_revision_progress(db_path, subject_id, progress)
    return replace(subject, revision_progress=progress)


def toggle_revision_box(db_path: str, subject_id: str, index: int) -> Subject:
    subject = get_subject(db_path, subject_id)
    try:
        updated = toggle_revision_step(subject, index)
    except InvalidTransitionError:
        logger.warning("Rejected revision toggle at box %d for subject %s", index, subject_id)
        raise
    save_revision_progress(db_path, subject_id, updated.revision_progress)
    logger.info("Revision progress for %s: %d", subject_id, updated.revision_progress)
    return updated
