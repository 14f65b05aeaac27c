from typing import Dict, Any, List, Optional, Literal, Union

from assistant_runtime.domain.models.conversation import WireModel
from .base import CollaboratorClient

SearchScope = Literal["nodes", "edges"]
RerankerType = Literal["cross_encoder", "rrf", "mmr", "episode_mentions"]
OverflowStrategy = Literal["truncate", "split", "fail"]

REQUIRED_USER_FIELDS = ("userId", "workspaceId", "email")


class MissingUserInfoError(ValueError):
    """Knowledge-graph calls need userId, workspaceId and email"""

    def __init__(self, missing: List[str]):
        self.missing = missing
        super().__init__(f"Missing required user info: {', '.join(missing)}")


class UserInfo(WireModel):
    """Identity the knowledge-graph service scopes memories by"""
    user_id: str
    workspace_id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "UserInfo":
        missing = [key for key in REQUIRED_USER_FIELDS if not str(payload.get(key) or "").strip()]
        if missing:
            raise MissingUserInfoError(missing)
        return cls.model_validate(payload)


def _user(user: Union[UserInfo, Dict[str, Any]]) -> UserInfo:
    return user if isinstance(user, UserInfo) else UserInfo.from_payload(user)


class MemoryServiceClient(CollaboratorClient):
    """Client of the knowledge-graph memory service"""

    service_name = "memory service"

    async def check_health(self) -> Dict[str, Any]:
        return await self._request("GET", "/api/memory", params={"action": "health"})

    async def get_status(self) -> Dict[str, Any]:
        return await self._request("GET", "/api/memory", params={"action": "status"})

    async def search(
        self,
        query: str,
        user: Union[UserInfo, Dict[str, Any]],
        scope: SearchScope = "nodes",
        reranker: RerankerType = "cross_encoder",
        max_results: int = 10,
    ) -> Dict[str, Any]:
        """Search the user's knowledge graph"""

        return await self._request("POST", "/api/memory", json={
            "operation": "search",
            "query": query,
            "scope": scope,
            "reranker": reranker,
            "maxResults": max_results,
            **_user(user).to_wire(),
        })

    async def store(
        self,
        content: str,
        user: Union[UserInfo, Dict[str, Any]],
        data_type: Literal["text", "json", "message"] = "text",
        overflow_strategy: OverflowStrategy = "split",
    ) -> Dict[str, Any]:
        """Store content in the user's knowledge graph"""

        return await self._request("POST", "/api/memory", json={
            "operation": "store",
            "content": content,
            "dataType": data_type,
            "overflowStrategy": overflow_strategy,
            **_user(user).to_wire(),
        })

    async def context(
        self,
        session_id: str,
        user: Union[UserInfo, Dict[str, Any]],
        limit: int = 10,
        messages: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """Memory context relevant to a session"""

        return await self._request("POST", "/api/memory", json={
            "operation": "context",
            "sessionId": session_id,
            "limit": limit,
            "messages": messages or [],
            **_user(user).to_wire(),
        })


def extract_facts(results: Dict[str, Any]) -> List[str]:
    """Fact strings from a search response"""
    facts = (results or {}).get("results", {}).get("facts") or []
    return [fact.get("fact", "") for fact in facts if isinstance(fact, dict)]
