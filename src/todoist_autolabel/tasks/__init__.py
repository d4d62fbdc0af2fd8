"""
Task subsystem.

Components:
- task_models.py: data structures (TaskRecord, TaskStatus, ErrorLogEntry, SyncState, ...)
- task_store.py: SQLite-backed progress store + capped error log
- task_scheduler.py: sync/classification orchestrator and the polling loop
"""
