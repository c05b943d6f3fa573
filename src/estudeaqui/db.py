"""Database initialization and connection management."""
import sqlite3
import uuid
from pathlib import Path

from estudeaqui.config import DEFAULT_DB_PATH

SCHEMA = """
CREATE TABLE IF NOT EXISTS subjects (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    color TEXT NOT NULL,
    description TEXT DEFAULT '',
    study_duration INTEGER,
    material_url TEXT,
    revision_progress INTEGER DEFAULT 0,
    weight REAL DEFAULT 1,
    knowledge_level TEXT DEFAULT 'intermediate',
    weekly_hours REAL,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS topics (
    id TEXT PRIMARY KEY,
    subject_id TEXT NOT NULL REFERENCES subjects(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    topic_order INTEGER NOT NULL,
    description TEXT DEFAULT '',
    is_completed INTEGER DEFAULT 0,
    completion_date TEXT
);

CREATE TABLE IF NOT EXISTS study_logs (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    subject_id TEXT NOT NULL,
    topic_id TEXT NOT NULL,
    date TEXT NOT NULL,
    duration INTEGER NOT NULL,
    start_page INTEGER DEFAULT 0,
    end_page INTEGER DEFAULT 0,
    questions_total INTEGER DEFAULT 0,
    questions_correct INTEGER DEFAULT 0,
    source TEXT DEFAULT 'manual',
    sequence_item_index INTEGER,
    notes TEXT DEFAULT ''
);

CREATE TABLE IF NOT EXISTS pomodoro_settings (
    user_id TEXT PRIMARY KEY,
    tasks TEXT NOT NULL,
    short_break_duration INTEGER NOT NULL,
    long_break_duration INTEGER NOT NULL,
    cycles_until_long_break INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS flashcards (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    question TEXT NOT NULL,
    answer TEXT NOT NULL,
    difficulty REAL NOT NULL,
    stability REAL NOT NULL,
    retrievability REAL NOT NULL,
    last_review TEXT NOT NULL,
    next_review TEXT NOT NULL,
    created_at TEXT NOT NULL,
    review_count INTEGER DEFAULT 0,
    last_rating INTEGER DEFAULT 0,
    consecutive_failures INTEGER DEFAULT 0
);

CREATE TABLE IF NOT EXISTS flashcard_results (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    flashcard_id TEXT NOT NULL REFERENCES flashcards(id) ON DELETE CASCADE,
    rating INTEGER NOT NULL,
    reviewed_at TEXT
);

CREATE TABLE IF NOT EXISTS review_sessions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    flashcard_ids TEXT NOT NULL,  -- JSON
    current_index INTEGER DEFAULT 0,
    start_time TEXT NOT NULL,
    completed INTEGER DEFAULT 0,
    total_cards INTEGER DEFAULT 0,
    correct_count INTEGER DEFAULT 0,
    time_spent REAL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS study_sequences (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    items TEXT NOT NULL,  -- JSON
    sequence_index INTEGER DEFAULT 0,
    restart_count INTEGER DEFAULT 0,
    is_active INTEGER DEFAULT 1
);

CREATE TABLE IF NOT EXISTS user_stats (
    user_id TEXT PRIMARY KEY,
    streak INTEGER DEFAULT 0,
    last_studied_date TEXT
);

CREATE TABLE IF NOT EXISTS schedule_plans (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    total_weekly_hours REAL NOT NULL,
    session_duration INTEGER NOT NULL,
    mode TEXT NOT NULL,
    sessions_per_subject TEXT NOT NULL,  -- JSON
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS subject_templates (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    subjects TEXT NOT NULL,  -- JSON
    created_at TEXT
);
"""


def new_id() -> str:
    return uuid.uuid4().hex


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Return a SQLite connection with row factory and foreign keys enabled."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db(db_path: str = DEFAULT_DB_PATH) -> None:
    """Initialize the database, creating all tables if they don't exist."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(db_path)
    conn.executescript(SCHEMA)
    conn.commit()
    conn.close()
