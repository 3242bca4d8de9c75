# src/sitewatch/tasks/task_api.py

from __future__ import annotations

import logging

from ..core.state import AppState
from .task_models import Invalid, Task
from .task_validator import parse_task_config

logger = logging.getLogger(__name__)


def refresh_schedule(state: AppState) -> None:
    """Rebuild every cron job from the current task list."""
    try:
        tasks = state.task_store.list_tasks()
    except Exception:
        logger.exception("list_tasks failed; schedule left unchanged")
        return
    state.scheduler.rebuild(tasks)


def describe_task(task: Task) -> str:
    lines = [f"#{task.id} {task.name}"]
    if task.url:
        lines.append(f"  url: {task.url}")
    if task.tag_selectors:
        lines.append(f"  tags: {task.tag_selectors}")
    if task.schedule:
        human = f" ({task.raw_schedule})" if task.raw_schedule and task.raw_schedule != task.schedule else ""
        lines.append(f"  schedule: {task.schedule}{human}")
    else:
        lines.append("  schedule: manual only")
    lines.append(f"  alert_if_true: {task.alert_if_true.value}")
    lines.append(f"  prompt: {task.prompt}")
    return "\n".join(lines)


def create_task(state: AppState, text: str, destination: str) -> str:
    result = parse_task_config(text, destination)
    if isinstance(result, Invalid):
        return "Invalid task config:\n" + result.describe()

    task_id = state.task_store.add_task(result.draft)
    logger.info("Task created task_id=%s destination=%s", task_id, destination)
    refresh_schedule(state)
    return f'Task "{result.draft.name}" created with ID {task_id}.'


def edit_task(state: AppState, task_id: int, text: str, destination: str) -> str:
    task = state.task_store.get_task(task_id)
    if task is None or task.destination != destination:
        return f"Task with ID {task_id} not found."

    result = parse_task_config(text, destination, base=task)
    if isinstance(result, Invalid):
        return "Invalid task config:\n" + result.describe()

    if not state.task_store.update_task(task_id, result.draft):
        return f"Task with ID {task_id} not found."

    state.gate.cache.forget_task(task_id)
    logger.info("Task updated task_id=%s destination=%s", task_id, destination)
    refresh_schedule(state)
    return f'Task "{result.draft.name}" updated.'


def delete_task(state: AppState, task_id: int, destination: str) -> str:
    task = state.task_store.get_task(task_id)
    if task is None or task.destination != destination:
        return f"Task with ID {task_id} not found."

    state.task_store.delete_task(task_id)
    # An in-flight run is not aborted; it only stops future firings.
    state.gate.cache.forget_task(task_id)
    logger.info("Task deleted task_id=%s destination=%s", task_id, destination)
    refresh_schedule(state)
    return f'Task "{task.name}" deleted.'


async def run_task_now(state: AppState, task_id: int, destination: str) -> str:
    """Manual run: always returns something to show (result, error, or busy)."""
    task = state.task_store.get_task(task_id)
    if task is None or task.destination != destination:
        return f"Task with ID {task_id} not found."

    logger.info("Manual run requested task_id=%s destination=%s", task_id, destination)
    return await state.gate.run_gated(task, is_manual=True)
