"""Admin HTTP routes."""
