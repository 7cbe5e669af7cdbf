"""REST API for printer control."""
