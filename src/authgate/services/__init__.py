"""Authentication session engine services."""
