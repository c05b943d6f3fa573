"""Flashcard review sessions: batch creation, rating submission and closing."""
import json
import logging
from datetime import datetime

from estudeaqui.db import get_connection, new_id
from estudeaqui.exceptions import InvalidTransitionError, NotFoundError
from estudeaqui.flashcards import get_due_cards, get_flashcard, save_flashcard_schedule
from estudeaqui.fsrs import DEFAULT_PARAMETERS, GOOD, FSRSParameters, calculate_next_review
from estudeaqui.models import Flashcard, ReviewSession

logger = logging.getLogger(__name__)


def _row_to_session(row) -> ReviewSession:
    return ReviewSession(
        id=row["id"],
        user_id=row["user_id"],
        flashcard_ids=json.loads(row["flashcard_ids"]),
        start_time=row["start_time"],
        current_index=row["current_index"],
        completed=bool(row["completed"]),
        total_cards=row["total_cards"],
        correct_count=row["correct_count"],
        time_spent=row["time_spent"],
    )


def start_review_session(
    db_path: str, user_id: str, max_cards: int = 20, now: datetime | None = None
) -> ReviewSession | None:
    """Create a session over the due cards. Returns None when nothing is due."""
    now = now or datetime.now()
    cards = get_due_cards(db_path, user_id, limit=max_cards, now=now)
    if not cards:
        logger.info("No flashcards due for user %s", user_id)
        return None
    session = ReviewSession(
        id=new_id(),
        user_id=user_id,
        flashcard_ids=[c.id for c in cards],
        start_time=now.isoformat(),
        total_cards=len(cards),
    )
    conn = get_connection(db_path)
    conn.execute(
        """INSERT INTO review_sessions (id, user_id, flashcard_ids, current_index, start_time,
        completed, total_cards, correct_count, time_spent) VALUES (?, ?, ?, 0, ?, 0, ?, 0, 0)""",
        (session.id, user_id, json.dumps(session.flashcard_ids), session.start_time,
         session.total_cards),
    )
    conn.commit()
    conn.close()
    logger.info("Started review session %s with %d cards", session.id, session.total_cards)
    return session


def get_review_session(db_path: str, session_id: str) -> ReviewSession:
    conn = get_connection(db_path)
    row = conn.execute("SELECT * FROM review_sessions WHERE id = ?", (session_id,)).fetchone()
    conn.close()
    if row is None:
        raise NotFoundError("review session", session_id)
    return _row_to_session(row)


def get_active_session(db_path: str, user_id: str) -> ReviewSession | None:
    """Latest incomplete session for the user, if any."""
    conn = get_connection(db_path)
    row = conn.execute(
        """SELECT * FROM review_sessions WHERE user_id = ? AND completed = 0
        ORDER BY start_time DESC LIMIT 1""",
        (user_id,),
    ).fetchone()
    conn.close()
    return _row_to_session(row) if row else None


def current_card(db_path: str, session: ReviewSession) -> Flashcard | None:
    if session.completed or session.current_index >= session.total_cards:
        return None
    return get_flashcard(db_path, session.flashcard_ids[session.current_index])


def submit_review(
    db_path: str,
    session_id: str,
    flashcard_id: str,
    rating: int,
    now: datetime | None = None,
    params: FSRSParameters = DEFAULT_PARAMETERS,
) -> tuple[Flashcard, ReviewSession]:
    """Rate one card of the session, reschedule it and advance the session."""
    now = now or datetime.now()
    session = get_review_session(db_path, session_id)
    if session.completed:
        raise InvalidTransitionError(f"review session {session_id} is already completed")
    if flashcard_id not in session.flashcard_ids:
        raise NotFoundError("flashcard in session", flashcard_id)
    expected = session.flashcard_ids[session.current_index]
    if flashcard_id != expected:
        raise InvalidTransitionError(
            f"card {flashcard_id} is not the current card of session {session_id} ({expected})"
        )

    card = get_flashcard(db_path, flashcard_id)
    updated_card = calculate_next_review(card, rating, now=now, params=params)

    current_index = session.current_index + 1
    elapsed = (now - datetime.fromisoformat(session.start_time)).total_seconds()
    session.current_index = current_index
    session.correct_count += 1 if rating >= GOOD else 0
    session.completed = current_index >= session.total_cards
    session.time_spent = max(0.0, elapsed)

    conn = get_connection(db_path)
    save_flashcard_schedule(conn, updated_card)
    conn.execute(
        """UPDATE review_sessions SET current_index=?, correct_count=?, completed=?, time_spent=?
        WHERE id=?""",
        (session.current_index, session.correct_count, int(session.completed),
         session.time_spent, session.id),
    )
    conn.commit()
    conn.close()
    if session.completed:
        logger.info(
            "Review session %s finished: %d/%d correct",
            session.id, session.correct_count, session.total_cards,
        )
    return updated_card, session


def close_review_session(db_path: str, session_id: str) -> ReviewSession:
    session = get_review_session(db_path, session_id)
    conn = get_connection(db_path)
    conn.execute("UPDATE review_sessions SET completed = 1 WHERE id = ?", (session_id,))
    conn.commit()
    conn.close()
    session.completed = True
    logger.info("Closed review session %s", session_id)
    return session
