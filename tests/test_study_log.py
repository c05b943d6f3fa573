"""Tests for study log validation, storage and streak tracking."""
from datetime import date, datetime, timedelta

import pytest

from estudeaqui.db import init_db
from estudeaqui.exceptions import NotFoundError, ValidationError
from estudeaqui.models import UserStats
from estudeaqui.sequence import get_active_sequence, save_study_sequence
from estudeaqui.study_log import (
    add_study_log, delete_study_log, get_study_log, get_study_logs, get_user_stats, next_streak,
    update_study_log, validate_log_entry,
)
from estudeaqui.subjects import add_subject, add_topic

NOW = datetime(2026, 3, 2, 10, 0, 0)


def _setup(db_path, study_duration=None):
    subject = add_subject(db_path, "u1", "Português", study_duration=study_duration)
    topic = add_topic(db_path, subject.id, "Crase")
    return subject, topic


def _entry(subject, topic, **overrides):
    data = {"subject_id": subject.id, "topic_id": topic.id, "duration": 30}
    data.update(overrides)
    return data


def test_validate_rejects_end_page_before_start():
    with pytest.raises(ValidationError) as exc:
        validate_log_entry({"subject_id": "s", "topic_id": "t", "duration": 30,
                            "start_page": 50, "end_page": 40})
    assert exc.value.field == "end_page"
    assert "start page" in exc.value.message


def test_validate_rejects_more_correct_than_total():
    with pytest.raises(ValidationError) as exc:
        validate_log_entry({"subject_id": "s", "topic_id": "t", "duration": 30,
                            "questions_total": 10, "questions_correct": 12})
    assert exc.value.field == "questions_correct"


@pytest.mark.parametrize("overrides,field", [
    ({"duration": 0}, "duration"),
    ({"subject_id": ""}, "subject_id"),
    ({"questions_total": -1}, "questions_total"),
])
def test_validate_rejects_bad_values(overrides, field):
    data = {"subject_id": "s", "topic_id": "t", "duration": 30}
    data.update(overrides)
    with pytest.raises(ValidationError) as exc:
        validate_log_entry(data)
    assert exc.value.field == field


def test_validate_accepts_equal_pages_and_full_marks():
    entry = validate_log_entry({"subject_id": "s", "topic_id": "t", "duration": 1,
                                "start_page": 10, "end_page": 10,
                                "questions_total": 5, "questions_correct": 5})
    assert entry.source == "manual"


def test_add_study_log_persists(tmp_db):
    init_db(tmp_db)
    subject, topic = _setup(tmp_db)
    log = add_study_log(tmp_db, "u1", _entry(subject, topic, questions_total=10, questions_correct=7), now=NOW)
    stored = get_study_log(tmp_db, log.id)
    assert stored.duration == 30
    assert stored.questions_correct == 7
    assert stored.date == NOW.isoformat()
    assert stored.user_id == "u1"


def test_invalid_log_leaves_no_trace(tmp_db):
    init_db(tmp_db)
    subject, topic = _setup(tmp_db)
    with pytest.raises(ValidationError):
        add_study_log(tmp_db, "u1", _entry(subject, topic, start_page=9, end_page=1), now=NOW)
    assert get_study_logs(tmp_db, "u1") == []
    assert get_user_stats(tmp_db, "u1").streak == 0


def test_add_study_log_checks_references(tmp_db):
    init_db(tmp_db)
    subject, topic = _setup(tmp_db)
    other = add_subject(tmp_db, "u1", "Matemática")
    with pytest.raises(ValidationError) as exc:
        add_study_log(tmp_db, "u1", _entry(other, topic), now=NOW)
    assert exc.value.field == "topic_id"
    with pytest.raises(NotFoundError):
        add_study_log(tmp_db, "u1", {"subject_id": "nope", "topic_id": topic.id, "duration": 5})


def test_logs_listed_newest_first(tmp_db):
    init_db(tmp_db)
    subject, topic = _setup(tmp_db)
    add_study_log(tmp_db, "u1", _entry(subject, topic, duration=10), now=NOW)
    add_study_log(tmp_db, "u1", _entry(subject, topic, duration=20), now=NOW + timedelta(hours=2))
    assert [log.duration for log in get_study_logs(tmp_db, "u1")] == [20, 10]


def test_next_streak():
    today = date(2026, 3, 2)
    fresh = next_streak(UserStats(user_id="u1"), today)
    assert fresh.streak == 1
    same_day = UserStats(user_id="u1", streak=4, last_studied_date="2026-03-02")
    assert next_streak(same_day, today) is same_day
    yesterday = UserStats(user_id="u1", streak=4, last_studied_date="2026-03-01")
    assert next_streak(yesterday, today).streak == 5
    gap = UserStats(user_id="u1", streak=4, last_studied_date="2026-02-20")
    assert next_streak(gap, today).streak == 1


def test_streak_updated_by_logging(tmp_db):
    init_db(tmp_db)
    subject, topic = _setup(tmp_db)
    add_study_log(tmp_db, "u1", _entry(subject, topic), now=NOW)
    add_study_log(tmp_db, "u1", _entry(subject, topic), now=NOW + timedelta(hours=3))
    assert get_user_stats(tmp_db, "u1").streak == 1
    add_study_log(tmp_db, "u1", _entry(subject, topic), now=NOW + timedelta(days=1))
    stats = get_user_stats(tmp_db, "u1")
    assert stats.streak == 2
    assert stats.last_studied_date == "2026-03-03"


def test_log_with_sequence_index_adds_time(tmp_db):
    init_db(tmp_db)
    subject, topic = _setup(tmp_db, study_duration=60)
    save_study_sequence(tmp_db, "u1", "Ciclo", [subject.id, subject.id])
    add_study_log(tmp_db, "u1", _entry(subject, topic, duration=40, sequence_item_index=0), now=NOW)
    sequence = get_active_sequence(tmp_db, "u1")
    assert sequence.items[0].total_time_studied == 40
    assert sequence.sequence_index == 0

    add_study_log(tmp_db, "u1", _entry(subject, topic, duration=20, sequence_item_index=0), now=NOW)
    sequence = get_active_sequence(tmp_db, "u1")
    assert sequence.items[0].total_time_studied == 60
    assert sequence.sequence_index == 1


def test_update_study_log_adjusts_sequence_time(tmp_db):
    init_db(tmp_db)
    subject, topic = _setup(tmp_db)
    save_study_sequence(tmp_db, "u1", "Ciclo", [subject.id])
    log = add_study_log(tmp_db, "u1", _entry(subject, topic, duration=30, sequence_item_index=0), now=NOW)
    updated = update_study_log(tmp_db, log.id, {"duration": 45, "notes": "revisão"})
    assert updated.duration == 45
    assert updated.notes == "revisão"
    assert get_active_sequence(tmp_db, "u1").items[0].total_time_studied == 45


def test_update_study_log_validates(tmp_db):
    init_db(tmp_db)
    subject, topic = _setup(tmp_db)
    log = add_study_log(tmp_db, "u1", _entry(subject, topic, questions_total=5, questions_correct=5), now=NOW)
    with pytest.raises(ValidationError):
        update_study_log(tmp_db, log.id, {"questions_total": 3})
    assert get_study_log(tmp_db, log.id).questions_total == 5


def test_delete_study_log_removes_sequence_time(tmp_db):
    init_db(tmp_db)
    subject, topic = _setup(tmp_db)
    save_study_sequence(tmp_db, "u1", "Ciclo", [subject.id])
    log = add_study_log(tmp_db, "u1", _entry(subject, topic, duration=30, sequence_item_index=0), now=NOW)
    delete_study_log(tmp_db, log.id)
    assert get_study_logs(tmp_db, "u1") == []
    assert get_active_sequence(tmp_db, "u1").items[0].total_time_studied == 0
    with pytest.raises(NotFoundError):
        delete_study_log(tmp_db, log.id)
