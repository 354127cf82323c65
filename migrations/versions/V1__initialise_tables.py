from alembic import op
from sqlalchemy.sql import text

revision = 'V1'
down_revision = None

def upgrade():
    sql = """
    CREATE TABLE IF NOT EXISTS workspaces (
        workspace_id VARCHAR(32) PRIMARY KEY, -- Slack team id
        name VARCHAR(255) NOT NULL,
        encrypted_bot_token TEXT NOT NULL,
        bot_user_id VARCHAR(32) NOT NULL,
        installed_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );

    CREATE TABLE IF NOT EXISTS users (
        user_id VARCHAR(32) PRIMARY KEY, -- Slack user id
        workspace_id VARCHAR(32) NOT NULL REFERENCES workspaces(workspace_id) ON DELETE CASCADE,
        encrypted_slack_token TEXT NOT NULL,
        encrypted_spotify_access_token TEXT, -- NULL when Spotify is not connected
        encrypted_spotify_refresh_token TEXT,
        spotify_expires_at TIMESTAMPTZ,
        extension_token_hash VARCHAR(64) UNIQUE, -- SHA-256 of the extension token, never the token itself
        is_sharing BOOLEAN NOT NULL DEFAULT FALSE,
        last_source VARCHAR(32),
        last_track_id TEXT,
        last_track_name TEXT,
        last_artist_name TEXT,
        is_currently_playing BOOLEAN NOT NULL DEFAULT FALSE,
        last_polled_at TIMESTAMPTZ,
        poll_error_count INTEGER NOT NULL DEFAULT 0 CHECK (poll_error_count >= 0),
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );

    CREATE INDEX IF NOT EXISTS ix_users_workspace_id ON users (workspace_id);
    CREATE INDEX IF NOT EXISTS ix_users_poll_eligibility ON users (is_sharing, poll_error_count, last_polled_at);

    CREATE TABLE IF NOT EXISTS user_sessions (
        user_session_id VARCHAR(36) PRIMARY KEY,
        user_id VARCHAR(32) NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        expires_at TIMESTAMPTZ NOT NULL,
        is_invalidated BOOLEAN NOT NULL DEFAULT FALSE
    );

    CREATE INDEX IF NOT EXISTS ix_user_sessions_user_id ON user_sessions (user_id);

    CREATE OR REPLACE FUNCTION update_updated_at_column()
    RETURNS TRIGGER AS $$
    BEGIN
        NEW.updated_at = now();
        RETURN NEW;
    END;
    $$ LANGUAGE plpgsql;

    CREATE TRIGGER trg_update_users_updated_at
    BEFORE UPDATE ON users
    FOR EACH ROW
    EXECUTE FUNCTION update_updated_at_column();
    """
    op.execute(text(sql))


def downgrade():
    sql = """
    DROP TRIGGER IF EXISTS trg_update_users_updated_at ON users;
    DROP FUNCTION IF EXISTS update_updated_at_column;

    DROP TABLE IF EXISTS user_sessions;
    DROP TABLE IF EXISTS users;
    DROP TABLE IF EXISTS workspaces;
    """
    op.execute(text(sql))
