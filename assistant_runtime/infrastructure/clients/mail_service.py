from typing import Dict, Any, List, Optional

from .base import CollaboratorClient


class MailServiceClient(CollaboratorClient):
    """Client of the mail-sending service"""

    service_name = "mail service"

    async def send(
        self,
        to: str,
        subject: str,
        body: str,
        from_address: Optional[str] = None,
        cc: Optional[str] = None,
        bcc: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self._request("POST", "/api/gmail/send", json=self._payload(
            to, subject, body, from_address, cc, bcc
        ))

    async def send_with_signature(
        self,
        to: str,
        subject: str,
        body: str,
        from_address: Optional[str] = None,
        cc: Optional[str] = None,
        bcc: Optional[str] = None,
        is_draft: bool = False,
    ) -> Dict[str, Any]:
        payload = self._payload(to, subject, body, from_address, cc, bcc)
        if is_draft:
            payload["isDraft"] = True
        return await self._request("POST", "/api/gmail/send-with-signature", json=payload)

    async def get_signature(self) -> Dict[str, Any]:
        return await self._request("GET", "/api/gmail/signature")

    async def search(self, query: str, max_results: int = 10) -> List[Dict[str, Any]]:
        data = await self._request(
            "GET", "/api/gmail/search", params={"q": query, "maxResults": max_results}
        )
        if isinstance(data, list):
            return data
        return data.get("messages") or data.get("emails") or []

    @staticmethod
    def _payload(to, subject, body, from_address, cc, bcc) -> Dict[str, Any]:
        payload = {"to": to, "subject": subject, "body": body}
        for key, value in (("from", from_address), ("cc", cc), ("bcc", bcc)):
            if value:
                payload[key] = value
        return payload
