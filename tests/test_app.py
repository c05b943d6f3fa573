import pytest
from datetime import datetime
from unittest.mock import MagicMock, patch

from estudeaqui.app import (
    SessionExitRequested, cmd_log, cmd_plan, edit_cycle, offer_pomodoro_log, run_pomodoro,
    run_review_session, session_int_prompt, session_prompt,
)
from estudeaqui.db import init_db
from estudeaqui.flashcards import create_flashcard, get_flashcard
from estudeaqui.models import PomodoroSettings, PomodoroTask
from estudeaqui.planning import list_schedule_plans
from estudeaqui.pomodoro import PomodoroTimer
from estudeaqui.review import get_review_session, start_review_session
from estudeaqui.sequence import adjust_item_time, get_active_sequence, save_study_sequence
from estudeaqui.study_log import get_study_logs
from estudeaqui.subjects import add_subject, add_topic, get_subjects


def test_session_exit_requested_is_exception():
    with pytest.raises(SessionExitRequested):
        raise SessionExitRequested()


def test_session_prompt_raises_on_q():
    with patch("estudeaqui.app.Prompt.ask", return_value="q"):
        with pytest.raises(SessionExitRequested):
            session_prompt("test prompt")


def test_session_prompt_raises_on_menu():
    with patch("estudeaqui.app.Prompt.ask", return_value="menu"):
        with pytest.raises(SessionExitRequested):
            session_prompt("test prompt")


def test_session_prompt_returns_normal_input():
    with patch("estudeaqui.app.Prompt.ask", return_value="hello"):
        result = session_prompt("test prompt")
        assert result == "hello"


def test_session_int_prompt_returns_normal_input():
    with patch("estudeaqui.app.Prompt.ask", return_value="3"):
        result = session_int_prompt("rate", choices=["1", "2", "3", "4"])
        assert result == 3


def test_run_review_session_exits_on_q(tmp_db):
    """First card rated, 'q' on the second reveal: first card saved, exit raised."""
    init_db(tmp_db)
    now = datetime(2026, 3, 2, 9, 0)
    for i in range(2):
        create_flashcard(tmp_db, "u1", f"Q{i}", f"A{i}", now=now)
    session = start_review_session(tmp_db, "u1")

    with patch("estudeaqui.app.Prompt.ask", side_effect=["", "4", "q"]):
        with pytest.raises(SessionExitRequested):
            run_review_session(tmp_db, session)

    stored = get_review_session(tmp_db, session.id)
    assert stored.current_index == 1
    assert not stored.completed
    assert get_flashcard(tmp_db, session.flashcard_ids[0]).review_count == 1
    assert get_flashcard(tmp_db, session.flashcard_ids[1]).review_count == 0


def test_run_review_session_completes(tmp_db):
    init_db(tmp_db)
    create_flashcard(tmp_db, "u1", "Q", "A")
    session = start_review_session(tmp_db, "u1")
    with patch("estudeaqui.app.Prompt.ask", side_effect=["", "3"]):
        run_review_session(tmp_db, session)
    stored = get_review_session(tmp_db, session.id)
    assert stored.completed
    assert stored.correct_count == 1


def test_cmd_log_records_cycle_slot(tmp_db):
    init_db(tmp_db)
    subject = add_subject(tmp_db, "u1", "Português", study_duration=60)
    add_topic(tmp_db, subject.id, "Crase")
    save_study_sequence(tmp_db, "u1", "Ciclo", [subject.id])
    # subject 1, topic 1, then minutes, pages and questions
    with patch("estudeaqui.app.IntPrompt.ask", side_effect=[1, 1, 45, 0, 12, 10, 8]):
        cmd_log(tmp_db, "u1")
    logs = get_study_logs(tmp_db, "u1")
    assert len(logs) == 1
    assert logs[0].duration == 45
    assert logs[0].sequence_item_index == 0
    assert get_active_sequence(tmp_db, "u1").items[0].total_time_studied == 45


def test_offer_pomodoro_log_saves_when_confirmed(tmp_db):
    init_db(tmp_db)
    subject = add_subject(tmp_db, "u1", "Português")
    topic = add_topic(tmp_db, subject.id, "Crase")
    timer = PomodoroTimer(PomodoroSettings(tasks=[PomodoroTask(id="t", name="Foco", duration=1500)]))
    finished = timer.start(item_id=topic.id)
    with patch("estudeaqui.app.Confirm.ask", return_value=True):
        offer_pomodoro_log(tmp_db, "u1", timer, finished)
    logs = get_study_logs(tmp_db, "u1")
    assert len(logs) == 1
    assert logs[0].duration == 25
    assert logs[0].source == "pomodoro"


def test_offer_pomodoro_log_skipped_without_topic(tmp_db):
    init_db(tmp_db)
    timer = PomodoroTimer(PomodoroSettings())
    finished = timer.start()
    with patch("estudeaqui.app.Confirm.ask") as confirm:
        offer_pomodoro_log(tmp_db, "u1", timer, finished)
    confirm.assert_not_called()


def test_run_pomodoro_stops_on_interrupt(tmp_db):
    init_db(tmp_db)
    settings = PomodoroSettings(tasks=[PomodoroTask(id="t", name="Foco", duration=3)])
    timer = PomodoroTimer(settings)
    timer.start()
    ticks = iter([None, None, KeyboardInterrupt()])

    def fake_sleep(_):
        value = next(ticks)
        if isinstance(value, BaseException):
            raise value

    with patch("estudeaqui.app.Prompt.ask", return_value="stop"):
        run_pomodoro(tmp_db, "u1", timer, sleep=fake_sleep)
    assert timer.state.status == "idle"


def test_run_pomodoro_pauses_progress_around_focus_callback(tmp_db):
    init_db(tmp_db)
    settings = PomodoroSettings(tasks=[PomodoroTask(id="t", name="Foco", duration=1)])
    events = []

    def on_complete(finished):
        events.append("callback")

    timer = PomodoroTimer(settings, on_focus_complete=on_complete)
    timer.start()
    ticks = iter([None, KeyboardInterrupt()])

    def fake_sleep(_):
        value = next(ticks)
        if isinstance(value, BaseException):
            raise value

    with patch("estudeaqui.app.Progress") as progress_cls, \
            patch("estudeaqui.app.Prompt.ask", return_value="stop"):
        progress = progress_cls.return_value.__enter__.return_value
        progress.stop = MagicMock(side_effect=lambda: events.append("stop"))
        progress.start = MagicMock(side_effect=lambda: events.append("start"))
        run_pomodoro(tmp_db, "u1", timer, sleep=fake_sleep)

    assert events[:3] == ["stop", "callback", "start"]
    assert timer.on_focus_complete is on_complete
    assert timer.state.status == "idle"


def test_cmd_plan_saves_and_applies(tmp_db):
    init_db(tmp_db)
    port = add_subject(tmp_db, "u1", "Português", knowledge_level="beginner")
    add_subject(tmp_db, "u1", "Direito", knowledge_level="advanced")
    with patch("estudeaqui.app.FloatPrompt.ask", return_value=4.0), \
            patch("estudeaqui.app.IntPrompt.ask", return_value=60), \
            patch("estudeaqui.app.Confirm.ask", return_value=True), \
            patch("estudeaqui.app.Prompt.ask", return_value="Semana"):
        cmd_plan(tmp_db, "u1")
    assert [p.name for p in list_schedule_plans(tmp_db, "u1")] == ["Semana"]
    hours = {s.id: s.weekly_hours for s in get_subjects(tmp_db, "u1")}
    assert hours[port.id] == 2.0


def test_edit_cycle_reorders_slots(tmp_db):
    init_db(tmp_db)
    port = add_subject(tmp_db, "u1", "Português")
    dir_ = add_subject(tmp_db, "u1", "Direito")
    sequence = save_study_sequence(tmp_db, "u1", "Ciclo", [port.id, dir_.id])
    adjust_item_time(tmp_db, "u1", 0, port.id, 30)
    with patch("estudeaqui.app.Prompt.ask", return_value="2, 1, 2"):
        edit_cycle(tmp_db, "u1", sequence)
    items = get_active_sequence(tmp_db, "u1").items
    assert [i.subject_id for i in items] == [dir_.id, port.id, dir_.id]
    assert items[1].total_time_studied == 30


def test_edit_cycle_rejects_unknown_numbers(tmp_db):
    init_db(tmp_db)
    port = add_subject(tmp_db, "u1", "Português")
    sequence = save_study_sequence(tmp_db, "u1", "Ciclo", [port.id])
    with patch("estudeaqui.app.Prompt.ask", return_value="1, 5"):
        edit_cycle(tmp_db, "u1", sequence)
    assert [i.subject_id for i in get_active_sequence(tmp_db, "u1").items] == [port.id]
