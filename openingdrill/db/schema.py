"""
Defines the database schema for openingdrill using a SQL string constant.
This keeps the schema definition separate from the database connection and
operation logic.
"""

DB_SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS decks (
        deck_id UUID PRIMARY KEY,
        name VARCHAR NOT NULL UNIQUE
    );

    CREATE TABLE IF NOT EXISTS openings (
        opening_id UUID PRIMARY KEY,
        deck_id UUID NOT NULL,
        name VARCHAR NOT NULL,
        side VARCHAR NOT NULL CHECK (side IN ('white', 'black'))
    );

    CREATE TABLE IF NOT EXISTS lines (
        line_id UUID PRIMARY KEY,
        opening_id UUID NOT NULL,
        line_name VARCHAR,
        moves_san VARCHAR[] NOT NULL,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMP WITH TIME ZONE NOT NULL
    );

    CREATE TABLE IF NOT EXISTS reviews (
        user_id VARCHAR NOT NULL,
        line_id UUID NOT NULL,
        status VARCHAR NOT NULL CHECK (status IN ('learning', 'review', 'removed')),
        due_on DATE,
        interval_days INTEGER CHECK (interval_days IS NULL OR interval_days >= 0),
        last_result VARCHAR CHECK (last_result IS NULL OR last_result IN ('pass', 'fail')),
        last_seen_at TIMESTAMP WITH TIME ZONE NOT NULL,
        PRIMARY KEY (user_id, line_id)
    );

    CREATE SEQUENCE IF NOT EXISTS review_event_seq;

    CREATE TABLE IF NOT EXISTS review_events (
        event_id INTEGER PRIMARY KEY DEFAULT nextval('review_event_seq'),
        user_id VARCHAR NOT NULL,
        line_id UUID NOT NULL,
        result VARCHAR NOT NULL CHECK (result IN ('pass', 'fail')),
        seen_at TIMESTAMP WITH TIME ZONE NOT NULL
    );

    CREATE TABLE IF NOT EXISTS daily_new_shown (
        user_id VARCHAR NOT NULL,
        deck_id UUID NOT NULL,
        day DATE NOT NULL,
        line_id UUID NOT NULL,
        PRIMARY KEY (user_id, deck_id, day, line_id)
    );

    CREATE TABLE IF NOT EXISTS daily_new_queued (
        user_id VARCHAR NOT NULL,
        deck_id UUID NOT NULL,
        day DATE NOT NULL,
        line_id UUID NOT NULL,
        PRIMARY KEY (user_id, deck_id, day, line_id)
    );

    CREATE TABLE IF NOT EXISTS daily_time_spent (
        user_id VARCHAR NOT NULL,
        day DATE NOT NULL,
        seconds INTEGER NOT NULL DEFAULT 0,
        PRIMARY KEY (user_id, day)
    );

    CREATE INDEX IF NOT EXISTS idx_openings_deck_id ON openings (deck_id);
    CREATE INDEX IF NOT EXISTS idx_lines_opening_id ON lines (opening_id);
    CREATE INDEX IF NOT EXISTS idx_review_events_line ON review_events (user_id, line_id);
    CREATE INDEX IF NOT EXISTS idx_review_events_seen_at ON review_events (seen_at);
"""

TABLE_NAMES = (
    "daily_time_spent",
    "daily_new_queued",
    "daily_new_shown",
    "review_events",
    "reviews",
    "lines",
    "openings",
    "decks",
)
