from typing import Dict, Any, List, Optional
from datetime import datetime, timezone
from urllib.parse import quote

from .base import CollaboratorClient


def parse_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class TaskServiceClient(CollaboratorClient):
    """Client of the task-scheduling service"""

    service_name = "task service"

    async def list_scheduled_tasks(self) -> List[Dict[str, Any]]:
        data = await self._request("GET", "/tasks/taskstudio/", params={"status": "scheduled"})
        tasks = data.get("tasks") if isinstance(data, dict) else data
        return tasks if isinstance(tasks, list) else []

    async def list_due_tasks(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Scheduled tasks whose scheduledDate is not in the future"""

        now = now or datetime.now(timezone.utc)
        due = []
        for task in await self.list_scheduled_tasks():
            scheduled = parse_timestamp(task.get("scheduledDate"))
            if scheduled is not None and scheduled <= now:
                due.append(task)
        return due

    async def update_task_status(
        self,
        task_id: str,
        status: str,
        result: Optional[str] = None,
        error: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"status": status}
        if result is not None:
            payload["result"] = result
        if error is not None:
            payload["error"] = error
        return await self._request(
            "PUT", f"/tasks/taskstudio/{quote(str(task_id), safe='')}/update/", json=payload
        )

    async def save_conversation(
        self,
        title: str,
        messages: List[Dict[str, Any]],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        return await self._request("POST", "/conversations/save/", json={
            "title": title,
            "messages": messages,
            "metadata": metadata or {},
        })
