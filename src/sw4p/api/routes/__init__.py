"""Public API routes."""
