"""Agent-facing tools and helpers."""
