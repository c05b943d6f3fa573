"""Tests for the revision cycle sequencing."""
import pytest

from estudeaqui.db import init_db
from estudeaqui.exceptions import InvalidTransitionError
from estudeaqui.models import Subject, Topic
from estudeaqui.revision import (
    COMPLETED, CURRENT, REVISION_SEQUENCE, WAITING, build_revision_sequence, clamp_progress,
    current_revision_topic, is_cycle_complete, revision_boxes, set_revision_progress,
    toggle_revision_box, toggle_revision_step,
)
from estudeaqui.subjects import add_subject, add_topic, delete_topic, get_subject, toggle_topic_completed


def _subject(completed_orders, total=5, progress=0):
    topics = [
        Topic(id=f"t{i}", subject_id="s1", name=f"Topic {i}", order=i, is_completed=i in completed_orders)
        for i in range(total)
    ]
    return Subject(id="s1", name="Português", color="#2563EB", topics=topics, revision_progress=progress)


def test_table_shape():
    assert len(REVISION_SEQUENCE) == 91
    assert REVISION_SEQUENCE[:6] == (0, 1, 0, 2, 1, 3)
    assert max(REVISION_SEQUENCE) == 23


def test_sequence_only_uses_completed_topics():
    sequence = build_revision_sequence(_subject({0, 1, 2}).topics)
    assert len(sequence) == 12
    assert {t.order for t in sequence} == {0, 1, 2}
    assert [t.order for t in sequence[:4]] == [0, 1, 0, 2]


def test_no_completed_topics_means_no_boxes():
    subject = _subject(set())
    assert build_revision_sequence(subject.topics) == []
    assert revision_boxes(subject) == []
    assert current_revision_topic(subject) is None
    assert not is_cycle_complete(subject)


def test_box_statuses_follow_progress():
    boxes = revision_boxes(_subject({0, 1, 2}, progress=2))
    assert [b.status for b in boxes[:4]] == [COMPLETED, COMPLETED, CURRENT, WAITING]
    assert all(b.status == WAITING for b in boxes[3:])
    assert [b.index for b in boxes] == list(range(12))


def test_current_topic_and_completion():
    subject = _subject({0, 1, 2}, progress=3)
    assert current_revision_topic(subject).order == 2
    done = _subject({0, 1, 2}, progress=12)
    assert current_revision_topic(done) is None
    assert is_cycle_complete(done)


def test_toggle_current_box_completes_it():
    subject = toggle_revision_step(_subject({0, 1, 2}, progress=4), 4)
    assert subject.revision_progress == 5


def test_toggle_last_completed_box_undoes_it():
    subject = toggle_revision_step(_subject({0, 1, 2}, progress=4), 3)
    assert subject.revision_progress == 3


@pytest.mark.parametrize("index", [0, 2, 5, 11])
def test_toggle_other_boxes_rejected(index):
    with pytest.raises(InvalidTransitionError):
        toggle_revision_step(_subject({0, 1, 2}, progress=4), index)


def test_toggle_past_end_rejected():
    subject = _subject({0, 1, 2}, progress=12)
    with pytest.raises(InvalidTransitionError):
        toggle_revision_step(subject, 12)
    assert toggle_revision_step(subject, 11).revision_progress == 11


def test_clamp_progress():
    subject = _subject({0, 1, 2})
    assert clamp_progress(subject, -3) == 0
    assert clamp_progress(subject, 40) == 12


def _persisted_subject(db_path, completed=3, total=4):
    subject = add_subject(db_path, "u1", "Direito Constitucional")
    topics = [add_topic(db_path, subject.id, f"Topic {i}") for i in range(total)]
    for topic in topics[:completed]:
        toggle_topic_completed(db_path, topic.id)
    return subject, topics


def test_toggle_revision_box_persists(tmp_db):
    init_db(tmp_db)
    subject, _ = _persisted_subject(tmp_db)
    toggle_revision_box(tmp_db, subject.id, 0)
    toggle_revision_box(tmp_db, subject.id, 1)
    assert get_subject(tmp_db, subject.id).revision_progress == 2
    toggle_revision_box(tmp_db, subject.id, 1)
    assert get_subject(tmp_db, subject.id).revision_progress == 1


def test_toggle_revision_box_rejects_without_saving(tmp_db):
    init_db(tmp_db)
    subject, _ = _persisted_subject(tmp_db)
    with pytest.raises(InvalidTransitionError):
        toggle_revision_box(tmp_db, subject.id, 5)
    assert get_subject(tmp_db, subject.id).revision_progress == 0


def test_set_revision_progress_clamps(tmp_db):
    init_db(tmp_db)
    subject, _ = _persisted_subject(tmp_db)
    updated = set_revision_progress(tmp_db, subject.id, 100)
    assert updated.revision_progress == 12
    assert is_cycle_complete(get_subject(tmp_db, subject.id))


def test_deleting_topic_clamps_progress(tmp_db):
    init_db(tmp_db)
    subject, topics = _persisted_subject(tmp_db)
    set_revision_progress(tmp_db, subject.id, 12)
    delete_topic(tmp_db, topics[2].id)
    reloaded = get_subject(tmp_db, subject.id)
    assert reloaded.revision_progress == len(build_revision_sequence(reloaded.topics))
    assert reloaded.revision_progress < 12
