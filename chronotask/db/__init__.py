"""Database engine and table creation."""
