"""Database schema definition, initialization, and migrations."""

import sqlite3

SCHEMA_VERSION = 2

# Each statement is a separate string to avoid executescript issues.
# Timestamps are stored as ISO-8601 text exactly as produced by
# utils.formatters.to_iso().
_SCHEMA_STATEMENTS = [
    """CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Clients (id is the stable external key)
    """CREATE TABLE IF NOT EXISTS clients (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL DEFAULT '',
        email TEXT,
        phone TEXT,
        updated_at TEXT NOT NULL,
        custom_attributes TEXT NOT NULL DEFAULT '{}'
    )""",

    # Tickets. client_id is the wire reference and may point at a client
    # that has not been synced yet; client_ref is the resolved link.
    """CREATE TABLE IF NOT EXISTS tickets (
        id TEXT PRIMARY KEY,
        number TEXT NOT NULL DEFAULT '',
        title TEXT NOT NULL DEFAULT '',
        status TEXT NOT NULL DEFAULT 'open'
            CHECK (status IN ('open', 'pending', 'resolved', 'closed')),
        client_id TEXT,
        client_ref TEXT,
        assignee TEXT,
        details TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (client_ref) REFERENCES clients(id) ON DELETE SET NULL
    )""",

    # Attachments are exclusively owned by one ticket
    """CREATE TABLE IF NOT EXISTS attachments (
        id TEXT PRIMARY KEY,
        ticket_id TEXT NOT NULL,
        position INTEGER NOT NULL DEFAULT 0,
        file_name TEXT NOT NULL DEFAULT '',
        content_type TEXT NOT NULL DEFAULT '',
        size INTEGER NOT NULL DEFAULT 0,
        download_url TEXT NOT NULL DEFAULT '',
        thumbnail_url TEXT,
        FOREIGN KEY (ticket_id) REFERENCES tickets(id) ON DELETE CASCADE
    )""",

    """CREATE TABLE IF NOT EXISTS hardware (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL DEFAULT '',
        barcode TEXT NOT NULL DEFAULT '',
        quantity_on_hand INTEGER NOT NULL DEFAULT 0,
        updated_at TEXT NOT NULL,
        last_inventory_event_at TEXT
    )""",

    # Inventory events. hardware_id is the wire reference, hardware_ref
    # the resolved link (cascade-deleted with its hardware).
    """CREATE TABLE IF NOT EXISTS inventory_events (
        id TEXT PRIMARY KEY,
        hardware_id TEXT NOT NULL,
        hardware_ref TEXT,
        delta INTEGER NOT NULL DEFAULT 0,
        balance INTEGER NOT NULL DEFAULT 0,
        note TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (hardware_ref) REFERENCES hardware(id) ON DELETE CASCADE
    )""",

    # Per entity kind sync progress, created lazily
    """CREATE TABLE IF NOT EXISTS sync_metadata (
        key TEXT PRIMARY KEY,
        last_successful_sync TEXT,
        etag TEXT,
        updated_at TEXT NOT NULL
    )""",

    "CREATE INDEX IF NOT EXISTS idx_tickets_client ON tickets(client_id)",
    "CREATE INDEX IF NOT EXISTS idx_tickets_status ON tickets(status)",
    "CREATE INDEX IF NOT EXISTS idx_attachments_ticket ON attachments(ticket_id)",
    "CREATE INDEX IF NOT EXISTS idx_hardware_barcode ON hardware(barcode)",
    "CREATE INDEX IF NOT EXISTS idx_events_hardware ON inventory_events(hardware_id)",
]

# ── Migration from v1 → v2: optimistic inventory writes ─────────
_MIGRATION_V2_STATEMENTS = [
    """ALTER TABLE inventory_events
        ADD COLUMN pending_retry INTEGER NOT NULL DEFAULT 0""",

    """CREATE TABLE IF NOT EXISTS pending_inventory_adjustments (
        id TEXT PRIMARY KEY,
        hardware_id TEXT NOT NULL,
        quantity INTEGER NOT NULL,
        note TEXT,
        created_at TEXT NOT NULL,
        last_error TEXT
    )""",

    "CREATE INDEX IF NOT EXISTS idx_events_pending "
    "ON inventory_events(pending_retry)",

    "INSERT OR REPLACE INTO schema_version (version) VALUES (2)",
]


def _get_schema_version(conn) -> int:
    """Get the current schema version, or 0 if no schema exists."""
    try:
        row = conn.execute(
            "SELECT MAX(version) as v FROM schema_version"
        ).fetchone()
        return row["v"] if row and row["v"] else 0
    except sqlite3.OperationalError:
        return 0


def _create_v1(conn):
    """Create the base v1 schema."""
    for stmt in _SCHEMA_STATEMENTS:
        conn.execute(stmt)
    conn.execute("INSERT OR IGNORE INTO schema_version (version) VALUES (1)")


def _migrate_v1_to_v2(conn):
    """Upgrade schema from v1 to v2."""
    for stmt in _MIGRATION_V2_STATEMENTS:
        conn.execute(stmt)


def initialize_database(db_connection):
    """Create all tables and indexes, applying migrations in order.

    A fresh database is built as v1 and migrated forward so that new
    and upgraded installs share one code path.
    """
    with db_connection.write_transaction() as conn:
        version = _get_schema_version(conn)

        if version == 0:
            _create_v1(conn)
            version = 1
        if version < 2:
            _migrate_v1_to_v2(conn)
