from typing import Dict, Any

from fastapi import APIRouter, Body, Depends, Query

from assistant_runtime.application.api.dependencies import error_response, get_mail_client
from assistant_runtime.infrastructure.clients.mail_service import MailServiceClient

router = APIRouter(prefix="/api/gmail", tags=["gmail"])

REQUIRED_FIELDS = (
    ("to", "Recipient email is required"),
    ("subject", "Subject is required"),
    ("body", "Email body is required"),
)


@router.get("/signature")
async def get_signature(mail: MailServiceClient = Depends(get_mail_client)):
    return await mail.get_signature()


@router.post("/send-with-signature")
async def send_with_signature(
    body: Dict[str, Any] = Body(...),
    mail: MailServiceClient = Depends(get_mail_client),
):
    is_draft = bool(body.get("isDraft"))
    if not is_draft:
        for field, message in REQUIRED_FIELDS:
            if not body.get(field):
                return error_response(400, message)

    return await mail.send_with_signature(
        to=body.get("to") or "",
        subject=body.get("subject") or "",
        body=body.get("body") or "",
        from_address=body.get("from"),
        cc=body.get("cc"),
        bcc=body.get("bcc"),
        is_draft=is_draft,
    )


@router.get("/search")
async def search_mail(
    q: str,
    max_results: int = Query(10, alias="maxResults"),
    mail: MailServiceClient = Depends(get_mail_client),
):
    messages = await mail.search(q, max_results=max_results)
    return {"success": True, "messages": messages}
