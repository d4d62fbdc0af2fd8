"""Todoist API client (task provider)."""
