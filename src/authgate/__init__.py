"""Phone, login widget and bot based authentication service."""
