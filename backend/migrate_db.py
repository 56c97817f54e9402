#!/usr/bin/env python3
"""
Database Migration Script
Upgrades a chat database created before message deletion and
idempotent sends existed.
"""

import sqlite3
import os

# Database path - adjust if needed
DB_PATH = os.path.join(os.path.dirname(__file__), "terra_chat.db")

def get_existing_columns(cursor, table_name):
    """Get list of existing column names in a table."""
    cursor.execute(f"PRAGMA table_info({table_name})")
    return [row[1] for row in cursor.fetchall()]

def migrate():
    print(f"Connecting to database: {DB_PATH}")

    if not os.path.exists(DB_PATH):
        print(f"Database not found at {DB_PATH}")
        print("The database will be created when you start the application.")
        return

    conn = sqlite3.connect(DB_PATH)
    cursor = conn.cursor()

    try:
        cursor.execute("SELECT name FROM sqlite_master WHERE type='table' AND name='chat_messages'")
        if not cursor.fetchone():
            print("Table 'chat_messages' does not exist. It will be created when the app starts.")
            return

        existing_columns = get_existing_columns(cursor, "chat_messages")
        print(f"Existing columns: {existing_columns}")

        migrations = [
            ("error_message", "TEXT"),
            ("read_at", "DATETIME"),
            ("client_key", "VARCHAR(64)"),
            ("deleted_for_everyone", "BOOLEAN NOT NULL DEFAULT 0"),
            ("deleted_for_everyone_at", "DATETIME"),
            ("deleted_for_everyone_by", "VARCHAR(64)"),
        ]

        for column_name, column_def in migrations:
            if column_name not in existing_columns:
                print(f"Adding column: {column_name}")
                cursor.execute(f"ALTER TABLE chat_messages ADD COLUMN {column_name} {column_def}")
                print(f"  ✓ Added {column_name}")
            else:
                print(f"  ✓ Column {column_name} already exists")

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS chat_message_hides (
                id INTEGER PRIMARY KEY,
                message_id INTEGER NOT NULL REFERENCES chat_messages(id) ON DELETE CASCADE,
                user_id VARCHAR(64) NOT NULL,
                created_at DATETIME NOT NULL,
                CONSTRAINT uq_chat_message_hides_user UNIQUE (message_id, user_id)
            )
        """)
        print("  ✓ Table chat_message_hides ready")

        indexes = [
            ("ix_chat_messages_thread_created", "chat_messages", "thread_id, created_at", False),
            ("uq_chat_messages_client_key", "chat_messages", "thread_id, client_key", True),
            ("ix_chat_threads_buyer_updated", "chat_threads", "buyer_id, updated_at DESC", False),
            ("ix_chat_threads_seller_updated", "chat_threads", "seller_id, updated_at DESC", False),
            ("ix_chat_message_hides_user_id", "chat_message_hides", "user_id", False),
        ]

        print("\n📊 Checking indexes...")
        for idx_name, table_name, columns, unique in indexes:
            cursor.execute(f"SELECT name FROM sqlite_master WHERE type='index' AND name='{idx_name}'")
            if not cursor.fetchone():
                try:
                    kind = "UNIQUE INDEX" if unique else "INDEX"
                    cursor.execute(f"CREATE {kind} IF NOT EXISTS {idx_name} ON {table_name} ({columns})")
                    print(f"  ✓ Created index {idx_name}")
                except sqlite3.DatabaseError as e:
                    print(f"  ⚠ Could not create {idx_name}: {e}")
            else:
                print(f"  ✓ Index {idx_name} already exists")

        print("\n⚡ Applying SQLite optimizations...")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA optimize")
        print("  ✓ WAL mode enabled")

        conn.commit()
        print("\n✅ Migration completed successfully!")

    except Exception as e:
        print(f"\n❌ Migration failed: {e}")
        conn.rollback()
        raise
    finally:
        conn.close()

if __name__ == "__main__":
    migrate()
