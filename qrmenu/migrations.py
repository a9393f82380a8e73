"""
Schema upgrade for legacy order tables.

A first-generation table has only id, qr_id, menu_id and timestamp. The
statements below add the optional columns the full feature set needs
(paid tracking at checkout, served toggling, table grouping, price
snapshots) and backfill table_id from qr_id. They are idempotent on
PostgreSQL / Supabase.
"""

UPGRADE_STATEMENTS = (
    "ALTER TABLE {table} ADD COLUMN IF NOT EXISTS table_id TEXT",
    "ALTER TABLE {table} ADD COLUMN IF NOT EXISTS price INTEGER DEFAULT 0",
    "ALTER TABLE {table} ADD COLUMN IF NOT EXISTS paid BOOLEAN DEFAULT FALSE",
    "ALTER TABLE {table} ADD COLUMN IF NOT EXISTS paid_at TIMESTAMPTZ",
    "ALTER TABLE {table} ADD COLUMN IF NOT EXISTS served BOOLEAN DEFAULT FALSE",
    "ALTER TABLE {table} ADD COLUMN IF NOT EXISTS served_at TIMESTAMPTZ",
    "UPDATE {table} SET table_id = qr_id WHERE table_id IS NULL",
    "CREATE INDEX IF NOT EXISTS idx_{table}_table_id_paid ON {table} (table_id, paid)",
)


def upgrade_sql(table: str = "orders") -> str:
    """Render the upgrade script for a table."""
    return "\n".join(f"{stmt.format(table=table)};" for stmt in UPGRADE_STATEMENTS)
