from typing import Dict, List, Any, Optional
from datetime import datetime

import structlog

from assistant_runtime.infrastructure.clients.base import CollaboratorError
from assistant_runtime.infrastructure.clients.task_service import TaskServiceClient
from .runtime_adapter import LocalRuntimeAdapter, final_state, run_text

logger = structlog.get_logger(__name__)


class TaskRunError(Exception):
    """The assistant did not complete a task's run"""


class TaskRunner:
    """Runs scheduled tasks that are due through the assistant and records the outcome"""

    def __init__(self, tasks: TaskServiceClient, runtime: LocalRuntimeAdapter):
        self.tasks = tasks
        self.runtime = runtime

    async def process_due(self, now: Optional[datetime] = None) -> List[Dict[str, str]]:
        """Process every due task; returns ``[{id, status}]`` in processing order.

        Raises:
            CollaboratorError: the scheduled tasks could not be listed
        """

        due = await self.tasks.list_due_tasks(now)
        logger.info("Processing due tasks", count=len(due))

        processed = []
        for task in due:
            task_id = str(task.get("id"))
            description = task.get("description") or ""
            try:
                result = await self.run_prompt(description)
                await self.tasks.update_task_status(task_id, "completed", result=result)
            except (TaskRunError, CollaboratorError) as e:
                logger.warning("Task failed", task_id=task_id, error=str(e))
                await self._mark_failed(task_id, str(e))
                processed.append({"id": task_id, "status": "failed"})
                continue

            await self._save_conversation(task, description, result)
            processed.append({"id": task_id, "status": "completed"})

        return processed

    async def run_prompt(self, prompt: str) -> str:
        messages = [{"role": "user", "content": [{"type": "text", "text": prompt}]}]
        state = await final_state(self.runtime.run(messages))
        if state.status.type != "complete":
            raise TaskRunError(state.status.error or f"assistant run {state.status.type}: {state.status.reason}")
        return run_text(state).strip()

    async def _mark_failed(self, task_id: str, error: str):
        try:
            await self.tasks.update_task_status(task_id, "failed", error=error)
        except CollaboratorError as e:
            logger.error("Could not mark task as failed", task_id=task_id, error=str(e))

    async def _save_conversation(self, task: Dict[str, Any], prompt: str, result: str):
        title = f"Task: {task['title']}" if task.get("title") else "Scheduled Task"
        try:
            await self.tasks.save_conversation(
                title,
                [
                    {"role": "user", "content": [{"type": "text", "text": prompt}]},
                    {"role": "assistant", "content": [{"type": "text", "text": result}]},
                ],
                metadata={"taskId": task.get("id")},
            )
        except CollaboratorError as e:
            logger.warning("Conversation save failed", task_id=task.get("id"), error=str(e))
