"""
Database Schema

SQL schema for the call_logs table used by SqlCallRecordStore.
"""

CALL_LOG_COLUMNS = (
    "id",
    "external_call_id",
    "user_id",
    "recipient_name",
    "phone_number",
    "message",
    "status",
    "outcome",
    "outcome_source",
    "started_at",
    "ended_at",
    "duration_seconds",
    "created_at",
    "updated_at",
    "raw_payload",
    "version",
)

TURSO_SCHEMA = """
-- Call Logs Table
CREATE TABLE IF NOT EXISTS call_logs (
    id TEXT PRIMARY KEY,
    external_call_id TEXT UNIQUE NOT NULL,
    user_id TEXT,
    recipient_name TEXT NOT NULL,
    phone_number TEXT NOT NULL,
    message TEXT NOT NULL DEFAULT '',
    status TEXT NOT NULL DEFAULT 'scheduled',
    outcome TEXT,
    outcome_source TEXT NOT NULL DEFAULT 'none',
    started_at TEXT,
    ended_at TEXT,
    duration_seconds INTEGER,
    created_at TEXT NOT NULL,
    updated_at TEXT,
    raw_payload TEXT DEFAULT '{}',
    version INTEGER NOT NULL DEFAULT 0
);

-- Indexes for dashboard queries
CREATE INDEX IF NOT EXISTS idx_call_logs_status ON call_logs(status);
CREATE INDEX IF NOT EXISTS idx_call_logs_user_id ON call_logs(user_id);
CREATE INDEX IF NOT EXISTS idx_call_logs_created_at ON call_logs(created_at);
"""
