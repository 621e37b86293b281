"""
DCLense - Routes Contact (public form)
"""

import logging
from fastapi import APIRouter, HTTPException
from fastapi.concurrency import run_in_threadpool

from email_service import email_service
from models import ContactMessage

logger = logging.getLogger("contact")

router = APIRouter(tags=["Contact"])


@router.post("/contact")
async def send_contact(data: ContactMessage):
    sent = await run_in_threadpool(
        email_service.send_contact_message, data.name, data.email, data.message, data.company
    )
    if not sent:
        logger.error(f"[CONTACT] message from {data.email} could not be sent")
        raise HTTPException(status_code=502, detail="Message could not be sent")

    logger.info(f"[CONTACT] message from {data.email} forwarded")
    return {"success": True, "message": "Message sent successfully"}
