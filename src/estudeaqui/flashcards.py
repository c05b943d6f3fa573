"""Flashcard storage and review recording with FSRS scheduling."""
import logging
from datetime import datetime

from estudeaqui.db import get_connection, new_id
from estudeaqui.exceptions import NotFoundError, ValidationError
from estudeaqui.fsrs import DEFAULT_PARAMETERS, FSRSParameters, calculate_next_review, create_initial_flashcard
from estudeaqui.models import Flashcard

logger = logging.getLogger(__name__)


def _row_to_card(row) -> Flashcard:
    return Flashcard(
        id=row["id"],
        user_id=row["user_id"],
        question=row["question"],
        answer=row["answer"],
        difficulty=row["difficulty"],
        stability=row["stability"],
        retrievability=row["retrievability"],
        last_review=datetime.fromisoformat(row["last_review"]),
        next_review=datetime.fromisoformat(row["next_review"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        review_count=row["review_count"],
        last_rating=row["last_rating"],
        consecutive_failures=row["consecutive_failures"],
    )


def _require_text(value: str | None, field: str) -> str:
    if value is None or not value.strip():
        raise ValidationError("is required", field=field)
    return value.strip()


def create_flashcard(
    db_path: str,
    user_id: str,
    question: str,
    answer: str,
    now: datetime | None = None,
    params: FSRSParameters = DEFAULT_PARAMETERS,
) -> Flashcard:
    question = _require_text(question, "question")
    answer = _require_text(answer, "answer")
    card = create_initial_flashcard(user_id, question, answer, now=now, params=params)
    card.id = new_id()
    conn = get_connection(db_path)
    conn.execute(
        """INSERT INTO flashcards (id, user_id, question, answer, difficulty, stability,
        retrievability, last_review, next_review, created_at, review_count, last_rating,
        consecutive_failures) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (card.id, card.user_id, card.question, card.answer, card.difficulty, card.stability,
         card.retrievability, card.last_review.isoformat(), card.next_review.isoformat(),
         card.created_at.isoformat(), card.review_count, card.last_rating,
         card.consecutive_failures),
    )
    conn.commit()
    conn.close()
    logger.info("Created flashcard %s for user %s", card.id, user_id)
    return card


def get_flashcard(db_path: str, card_id: str) -> Flashcard:
    conn = get_connection(db_path)
    row = conn.execute("SELECT * FROM flashcards WHERE id = ?", (card_id,)).fetchone()
    conn.close()
    if row is None:
        raise NotFoundError("flashcard", card_id)
    return _row_to_card(row)


def get_flashcards(db_path: str, user_id: str) -> list[Flashcard]:
    conn = get_connection(db_path)
    rows = conn.execute(
        "SELECT * FROM flashcards WHERE user_id = ? ORDER BY created_at", (user_id,)
    ).fetchall()
    conn.close()
    return [_row_to_card(r) for r in rows]


def get_due_cards(
    db_path: str, user_id: str, limit: int = 20, now: datetime | None = None
) -> list[Flashcard]:
    """Cards whose next review has passed, weakest (lowest retrievability) first."""
    now = now or datetime.now()
    conn = get_connection(db_path)
    rows = conn.execute(
        """SELECT * FROM flashcards
        WHERE user_id = ? AND next_review <= ?
        ORDER BY retrievability ASC, next_review ASC
        LIMIT ?""",
        (user_id, now.isoformat(), limit),
    ).fetchall()
    conn.close()
    return [_row_to_card(r) for r in rows]


def update_flashcard_content(db_path: str, card_id: str, question: str, answer: str) -> Flashcard:
    question = _require_text(question, "question")
    answer = _require_text(answer, "answer")
    conn = get_connection(db_path)
    cur = conn.execute(
        "UPDATE flashcards SET question = ?, answer = ? WHERE id = ?",
        (question, answer, card_id),
    )
    conn.commit()
    conn.close()
    if cur.rowcount == 0:
        raise NotFoundError("flashcard", card_id)
    return get_flashcard(db_path, card_id)


def delete_flashcard(db_path: str, card_id: str) -> None:
    conn = get_connection(db_path)
    cur = conn.execute("DELETE FROM flashcards WHERE id = ?", (card_id,))
    conn.commit()
    conn.close()
    if cur.rowcount == 0:
        raise NotFoundError("flashcard", card_id)
    logger.info("Deleted flashcard %s", card_id)


def save_flashcard_schedule(conn, card: Flashcard) -> None:
    conn.execute(
        """UPDATE flashcards SET difficulty=?, stability=?, retrievability=?, last_review=?,
        next_review=?, review_count=?, last_rating=?, consecutive_failures=?
        WHERE id=?""",
        (card.difficulty, card.stability, card.retrievability, card.last_review.isoformat(),
         card.next_review.isoformat(), card.review_count, card.last_rating,
         card.consecutive_failures, card.id),
    )
    conn.execute(
        "INSERT INTO flashcard_results (flashcard_id, rating, reviewed_at) VALUES (?, ?, ?)",
        (card.id, card.last_rating, card.last_review.isoformat()),
    )


def record_flashcard_review(
    db_path: str,
    card_id: str,
    rating: int,
    now: datetime | None = None,
    params: FSRSParameters = DEFAULT_PARAMETERS,
) -> Flashcard:
    card = get_flashcard(db_path, card_id)
    updated = calculate_next_review(card, rating, now=now, params=params)
    conn = get_connection(db_path)
    save_flashcard_schedule(conn, updated)
    conn.commit()
    conn.close()
    logger.info(
        "Reviewed flashcard %s rating=%d next_review=%s",
        card_id, rating, updated.next_review.isoformat(),
    )
    return updated
