"""Index expiry_date so purging expired rows does not scan the table."""

_INDEX = "CREATE INDEX IF NOT EXISTS idx_images_expiry_date ON images(expiry_date)"

STATEMENTS = {
    "postgresql": [_INDEX],
    "sqlite": [_INDEX],
}
