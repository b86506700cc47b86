"""SQLite engines, table mapping and the flat-row store."""
