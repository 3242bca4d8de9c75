"""
Task execution core.

Components:
- executor.py: runs one task (fetch -> summarize -> format)
- cache.py: short-lived result cache keyed by (destination, task_id)
- gate.py: admission layer (cache, in-flight dedup, bounded pool, manual-first queue)
- ports.py / errors.py: collaborator interfaces and their typed failures
- state.py: AppState wired by cli/bootstrap.py
"""
