"""
Task subsystem.

Components:
- task_models.py: data structures (Task, TaskDraft, ParseResult)
- task_validator.py: key=value config parsing + validation
- task_store.py: SQLite-backed storage
- task_scheduler.py: cron scheduler that feeds the gate
- task_api.py: small high-level helpers used by the command layer
"""
