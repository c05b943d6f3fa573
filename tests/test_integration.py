"""End-to-end test of the core workflow."""
from datetime import date, datetime, timedelta

from estudeaqui.dashboard import get_dashboard
from estudeaqui.db import init_db
from estudeaqui.flashcards import create_flashcard
from estudeaqui.importer import apply_template
from estudeaqui.models import PomodoroSettings, PomodoroTask
from estudeaqui.pomodoro import PomodoroTimer, build_pomodoro_log
from estudeaqui.review import start_review_session, submit_review
from estudeaqui.revision import current_revision_topic, is_cycle_complete, revision_boxes, toggle_revision_box
from estudeaqui.sequence import get_active_sequence, save_study_sequence
from estudeaqui.study_log import add_study_log
from estudeaqui.subjects import get_subject, toggle_topic_completed


def test_full_study_day_workflow(tmp_db):
    """Import subjects, study with a Pomodoro, revise and review flashcards."""
    init_db(tmp_db)
    subjects = apply_template(tmp_db, "u1", {"subjects": [
        {"name": "Português", "study_duration": 50, "topics": ["Crase", "Regência", "Concordância"]},
        {"name": "Matemática", "study_duration": 60, "topics": ["Frações"]},
    ]})
    portugues, matematica = subjects
    save_study_sequence(tmp_db, "u1", "Ciclo TRF", [portugues.id, matematica.id])

    # Pomodoro focus segment on the first topic
    now = datetime(2026, 3, 4, 8, 0)
    settings = PomodoroSettings(tasks=[PomodoroTask(id="t", name="Questões", duration=50 * 60)])
    finished = []
    timer = PomodoroTimer(settings, on_focus_complete=finished.append)
    timer.start(item_id=portugues.topics[0].id)
    while not finished:
        timer.tick(timer.generation)
    assert timer.state.status == "short_break"

    log_data = build_pomodoro_log(finished[0], settings, portugues.topics[0])
    log_data.update(questions_total=20, questions_correct=14, sequence_item_index=0)
    add_study_log(tmp_db, "u1", log_data, now=now)

    sequence = get_active_sequence(tmp_db, "u1")
    assert sequence.items[0].total_time_studied == 50
    assert sequence.sequence_index == 1

    # Revision cycle over completed topics
    for topic in portugues.topics:
        toggle_topic_completed(tmp_db, topic.id)
    subject = get_subject(tmp_db, portugues.id)
    boxes = revision_boxes(subject)
    assert len(boxes) == 12
    for index in range(len(boxes)):
        subject = toggle_revision_box(tmp_db, subject.id, index)
    assert is_cycle_complete(get_subject(tmp_db, portugues.id))
    assert current_revision_topic(get_subject(tmp_db, portugues.id)) is None

    # Flashcards
    create_flashcard(tmp_db, "u1", "Crase antes de masculino?", "Não, salvo exceções", now=now)
    create_flashcard(tmp_db, "u1", "Sujeito composto?", "Verbo no plural", now=now)
    session = start_review_session(tmp_db, "u1", now=now)
    for index, card_id in enumerate(session.flashcard_ids):
        card, session = submit_review(
            tmp_db, session.id, card_id, 4 if index == 0 else 1, now=now + timedelta(minutes=1),
        )
        assert card.next_review > card.last_review
    assert session.completed
    assert session.correct_count == 1
    assert start_review_session(tmp_db, "u1", now=now + timedelta(minutes=5)) is None

    # Dashboard
    data = get_dashboard(tmp_db, "u1", today=date(2026, 3, 4))
    assert data["streak"] == 1
    assert data["time_today"] == 50
    accuracy = data["accuracy_by_subject"][0]
    assert (accuracy["accuracy"], accuracy["total_questions"], accuracy["correct_questions"]) == (70, 20, 14)
    assert data["completion"]["completed"] == 0.75
    assert matematica.topics[0].is_completed is False
