"""Database schema migrations."""

from __future__ import annotations

import json

from inphrone.core.logger import get_logger
from inphrone.database.connection import OptimizedSQLitePool

logger = get_logger(__name__)


SCHEMA_SQL: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS profiles (
        id TEXT PRIMARY KEY,
        email TEXT UNIQUE NOT NULL,
        full_name TEXT,
        user_type TEXT NOT NULL DEFAULT 'audience',
        role TEXT NOT NULL DEFAULT 'user',
        onboarding_completed BOOLEAN NOT NULL DEFAULT FALSE,
        settings TEXT NOT NULL DEFAULT '{}',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_profiles_user_type ON profiles(user_type);",

    # Your Turn
    """
    CREATE TABLE IF NOT EXISTS your_turn_slots (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        slot_date TEXT NOT NULL,
        slot_time TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'scheduled'
            CHECK (status IN ('scheduled', 'open', 'won', 'expired', 'archived')),
        attempt_count INTEGER NOT NULL DEFAULT 0 CHECK (attempt_count >= 0),
        winner_id TEXT,
        opened_at TEXT,
        resolved_at TEXT,
        archived_at TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (slot_date, slot_time),
        FOREIGN KEY(winner_id) REFERENCES profiles(id)
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_slots_status ON your_turn_slots(status, slot_date);",
    """
    CREATE TRIGGER IF NOT EXISTS trg_slot_status_forward
    BEFORE UPDATE OF status ON your_turn_slots
    WHEN NOT (
        NEW.status = OLD.status
        OR (OLD.status = 'scheduled' AND NEW.status = 'open')
        OR (OLD.status = 'open' AND NEW.status IN ('won', 'expired'))
        OR (OLD.status IN ('won', 'expired') AND NEW.status = 'archived')
    )
    BEGIN
        SELECT RAISE(ABORT, 'illegal slot status transition');
    END;
    """,
    """
    CREATE TRIGGER IF NOT EXISTS trg_slot_winner_fixed
    BEFORE UPDATE OF winner_id ON your_turn_slots
    WHEN OLD.winner_id IS NOT NULL AND NEW.winner_id IS NOT OLD.winner_id
    BEGIN
        SELECT RAISE(ABORT, 'slot winner cannot change');
    END;
    """,
    """
    CREATE TRIGGER IF NOT EXISTS trg_slot_attempts_monotonic
    BEFORE UPDATE OF attempt_count ON your_turn_slots
    WHEN NEW.attempt_count < OLD.attempt_count
    BEGIN
        SELECT RAISE(ABORT, 'attempt count cannot decrease');
    END;
    """,
    """
    CREATE TABLE IF NOT EXISTS your_turn_attempts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        slot_id INTEGER NOT NULL,
        user_id TEXT NOT NULL,
        attempted_at TEXT NOT NULL,
        is_winner BOOLEAN NOT NULL DEFAULT FALSE,
        UNIQUE (slot_id, user_id),
        FOREIGN KEY(slot_id) REFERENCES your_turn_slots(id),
        FOREIGN KEY(user_id) REFERENCES profiles(id)
    );
    """,
    # At most one winning attempt per slot
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_attempts_single_winner ON your_turn_attempts(slot_id) WHERE is_winner = 1;",
    "CREATE INDEX IF NOT EXISTS idx_attempts_user ON your_turn_attempts(user_id);",
    """
    CREATE TABLE IF NOT EXISTS your_turn_questions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        slot_id INTEGER UNIQUE NOT NULL,
        user_id TEXT NOT NULL,
        question_text TEXT NOT NULL,
        total_votes INTEGER NOT NULL DEFAULT 0,
        is_deleted BOOLEAN NOT NULL DEFAULT FALSE,
        deleted_by TEXT,
        deleted_at TEXT,
        deletion_reason TEXT,
        created_at TEXT NOT NULL,
        FOREIGN KEY(slot_id) REFERENCES your_turn_slots(id),
        FOREIGN KEY(user_id) REFERENCES profiles(id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS your_turn_options (
        question_id INTEGER NOT NULL,
        option_id TEXT NOT NULL,
        label TEXT NOT NULL,
        position INTEGER NOT NULL,
        votes INTEGER NOT NULL DEFAULT 0,
        PRIMARY KEY (question_id, option_id),
        FOREIGN KEY(question_id) REFERENCES your_turn_questions(id)
    );
    """,
    """
    CREATE TRIGGER IF NOT EXISTS trg_option_votes_monotonic
    BEFORE UPDATE OF votes ON your_turn_options
    WHEN NEW.votes < OLD.votes
    BEGIN
        SELECT RAISE(ABORT, 'vote totals cannot decrease');
    END;
    """,
    """
    CREATE TRIGGER IF NOT EXISTS trg_question_votes_monotonic
    BEFORE UPDATE OF total_votes ON your_turn_questions
    WHEN NEW.total_votes < OLD.total_votes
    BEGIN
        SELECT RAISE(ABORT, 'vote totals cannot decrease');
    END;
    """,
    """
    CREATE TABLE IF NOT EXISTS your_turn_votes (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        question_id INTEGER NOT NULL,
        user_id TEXT NOT NULL,
        option_id TEXT NOT NULL,
        voted_at TEXT NOT NULL,
        UNIQUE (question_id, user_id),
        FOREIGN KEY(question_id) REFERENCES your_turn_questions(id),
        FOREIGN KEY(user_id) REFERENCES profiles(id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS your_turn_history (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        slot_id INTEGER UNIQUE NOT NULL,
        slot_date TEXT NOT NULL,
        slot_time TEXT NOT NULL,
        final_status TEXT NOT NULL,
        winner_id TEXT,
        winner_name TEXT,
        question_text TEXT,
        options TEXT NOT NULL DEFAULT '[]',
        total_votes INTEGER NOT NULL DEFAULT 0,
        attempt_count INTEGER NOT NULL DEFAULT 0,
        archived_at TEXT NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_history_archived ON your_turn_history(archived_at);",

    # InphroSync
    """
    CREATE TABLE IF NOT EXISTS inphrosync_questions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        question_type TEXT UNIQUE NOT NULL,
        question_text TEXT NOT NULL,
        options TEXT NOT NULL,
        display_order INTEGER NOT NULL DEFAULT 0,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS inphrosync_responses (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL,
        question_type TEXT NOT NULL,
        selected_option TEXT NOT NULL,
        response_date TEXT NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (user_id, question_type, response_date),
        FOREIGN KEY(user_id) REFERENCES profiles(id)
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_inphrosync_date ON inphrosync_responses(response_date, question_type);",

    # Gamification
    """
    CREATE TABLE IF NOT EXISTS user_streaks (
        user_id TEXT PRIMARY KEY,
        current_streak_weeks INTEGER NOT NULL DEFAULT 0,
        longest_streak_weeks INTEGER NOT NULL DEFAULT 0,
        streak_tier TEXT NOT NULL DEFAULT 'none',
        total_weekly_contributions INTEGER NOT NULL DEFAULT 0,
        last_activity_date TEXT,
        inphrosync_streak_days INTEGER NOT NULL DEFAULT 0,
        inphrosync_longest_streak INTEGER NOT NULL DEFAULT 0,
        inphrosync_last_participation TEXT,
        updated_at TEXT,
        FOREIGN KEY(user_id) REFERENCES profiles(id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS user_badges (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL,
        badge_type TEXT NOT NULL,
        badge_name TEXT NOT NULL,
        badge_description TEXT,
        metadata TEXT NOT NULL DEFAULT '{}',
        earned_at TEXT NOT NULL,
        UNIQUE (user_id, badge_type),
        FOREIGN KEY(user_id) REFERENCES profiles(id)
    );
    """,

    # Opinions
    """
    CREATE TABLE IF NOT EXISTS categories (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT UNIQUE NOT NULL,
        description TEXT,
        is_active BOOLEAN NOT NULL DEFAULT TRUE
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS opinions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL,
        category_id INTEGER NOT NULL,
        title TEXT NOT NULL,
        content TEXT NOT NULL,
        likes_count INTEGER NOT NULL DEFAULT 0,
        is_deleted BOOLEAN NOT NULL DEFAULT FALSE,
        deleted_by TEXT,
        deleted_at TEXT,
        deletion_reason TEXT,
        created_at TEXT NOT NULL,
        FOREIGN KEY(user_id) REFERENCES profiles(id),
        FOREIGN KEY(category_id) REFERENCES categories(id)
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_opinions_category ON opinions(category_id, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_opinions_user ON opinions(user_id);",
    """
    CREATE TABLE IF NOT EXISTS opinion_likes (
        opinion_id INTEGER NOT NULL,
        user_id TEXT NOT NULL,
        created_at TEXT NOT NULL,
        PRIMARY KEY (opinion_id, user_id),
        FOREIGN KEY(opinion_id) REFERENCES opinions(id),
        FOREIGN KEY(user_id) REFERENCES profiles(id)
    );
    """,

    # Coupons
    """
    CREATE TABLE IF NOT EXISTS coupons (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        brand TEXT NOT NULL,
        code TEXT NOT NULL,
        description TEXT,
        total_quantity INTEGER NOT NULL CHECK (total_quantity >= 0),
        claimed_count INTEGER NOT NULL DEFAULT 0,
        expires_at TEXT,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        CHECK (claimed_count <= total_quantity)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS user_coupons (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL,
        coupon_id INTEGER NOT NULL,
        code TEXT NOT NULL,
        claimed_at TEXT NOT NULL,
        UNIQUE (user_id, coupon_id),
        FOREIGN KEY(user_id) REFERENCES profiles(id),
        FOREIGN KEY(coupon_id) REFERENCES coupons(id)
    );
    """,

    # Notifications and preferences
    """
    CREATE TABLE IF NOT EXISTS notifications (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL,
        title TEXT NOT NULL,
        message TEXT NOT NULL,
        type TEXT NOT NULL,
        action_url TEXT,
        is_read BOOLEAN NOT NULL DEFAULT FALSE,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY(user_id) REFERENCES profiles(id)
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id, is_read, created_at);",
    """
    CREATE TABLE IF NOT EXISTS push_subscriptions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL,
        endpoint TEXT UNIQUE NOT NULL,
        p256dh TEXT NOT NULL,
        auth TEXT NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY(user_id) REFERENCES profiles(id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS user_preferences (
        owner TEXT NOT NULL,
        key TEXT NOT NULL,
        value TEXT NOT NULL,
        expires_at TEXT,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (owner, key)
    );
    """,

    # Admin audit log
    """
    CREATE TABLE IF NOT EXISTS audit_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        admin_username TEXT NOT NULL,
        action_type TEXT NOT NULL,
        entity_type TEXT NOT NULL,
        entity_id INTEGER,
        old_value TEXT,
        new_value TEXT,
        reason TEXT,
        ip_address TEXT,
        user_agent TEXT,
        created_at TEXT NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_audit_log_admin ON audit_log(admin_username, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_audit_log_entity ON audit_log(entity_type, entity_id);",
)


DEFAULT_CATEGORIES: tuple[tuple[str, str], ...] = (
    ("Film", "Movies and cinema"),
    ("Music", "Albums, singles and live shows"),
    ("TV", "Broadcast television"),
    ("OTT", "Streaming originals"),
    ("Gaming", "Games and esports"),
    ("YouTube", "Creators and channels"),
)

DEFAULT_INPHROSYNC_QUESTIONS: tuple[tuple[str, str, list], ...] = (
    (
        "entertainment_mood",
        "What was your entertainment mood yesterday?",
        [
            {"id": "relaxed", "label": "Relaxed"},
            {"id": "excited", "label": "Excited"},
            {"id": "nostalgic", "label": "Nostalgic"},
            {"id": "curious", "label": "Curious"},
        ],
    ),
    (
        "device_used",
        "Which device did you use most for entertainment?",
        [
            {"id": "phone", "label": "Phone"},
            {"id": "tv", "label": "TV"},
            {"id": "laptop", "label": "Laptop"},
            {"id": "tablet", "label": "Tablet"},
        ],
    ),
    (
        "platform_used",
        "Where did you watch or listen the most?",
        [
            {"id": "ott", "label": "OTT apps"},
            {"id": "youtube", "label": "YouTube"},
            {"id": "theatre", "label": "Theatre"},
            {"id": "music_apps", "label": "Music apps"},
        ],
    ),
)


async def run_migrations(pool: OptimizedSQLitePool) -> None:
    """Create the schema and seed reference data. Safe to run repeatedly."""
    async with pool.connection() as conn:
        await conn.execute("BEGIN")
        try:
            for statement in SCHEMA_SQL:
                await conn.execute(statement)

            await conn.executemany(
                "INSERT OR IGNORE INTO categories (name, description) VALUES (?, ?)",
                DEFAULT_CATEGORIES,
            )
            await conn.executemany(
                """
                INSERT OR IGNORE INTO inphrosync_questions
                (question_type, question_text, options, display_order)
                VALUES (?, ?, ?, ?)
                """,
                [
                    (question_type, text, json.dumps(options), order)
                    for order, (question_type, text, options) in enumerate(DEFAULT_INPHROSYNC_QUESTIONS)
                ],
            )
        except Exception:
            await conn.rollback()
            raise
        else:
            await conn.commit()
    logger.info("Schema migrations applied (%d statements)", len(SCHEMA_SQL))
