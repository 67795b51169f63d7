"""Initial database schema: the images table.

``IF NOT EXISTS`` adopts a table left by an earlier deployment. Expiry
timestamps are bound timezone-aware, so on PostgreSQL a legacy
``expiry_date TIMESTAMP`` column is converted to ``TIMESTAMPTZ``, reading the
stored values as UTC.
"""

STATEMENTS = {
    "postgresql": [
        """
        CREATE TABLE IF NOT EXISTS images (
            id            SERIAL PRIMARY KEY,
            share_id      VARCHAR(32) NOT NULL UNIQUE,
            original_name TEXT,
            mimetype      TEXT NOT NULL,
            size          INTEGER NOT NULL,
            image_data    BYTEA NOT NULL,
            expiry_date   TIMESTAMPTZ NOT NULL
        )
        """,
        """
        DO $$
        BEGIN
            IF EXISTS (
                SELECT 1 FROM information_schema.columns
                WHERE table_schema = current_schema()
                  AND table_name = 'images'
                  AND column_name = 'expiry_date'
                  AND data_type = 'timestamp without time zone'
            ) THEN
                ALTER TABLE images
                    ALTER COLUMN expiry_date TYPE TIMESTAMPTZ
                    USING expiry_date AT TIME ZONE 'UTC';
            END IF;
        END
        $$
        """,
    ],
    "sqlite": [
        """
        CREATE TABLE IF NOT EXISTS images (
            id            INTEGER PRIMARY KEY AUTOINCREMENT,
            share_id      TEXT NOT NULL UNIQUE,
            original_name TEXT,
            mimetype      TEXT NOT NULL,
            size          INTEGER NOT NULL,
            image_data    BLOB NOT NULL,
            expiry_date   TEXT NOT NULL
        )
        """,
    ],
}
