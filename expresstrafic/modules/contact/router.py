import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from expresstrafic.db.session import get_session
from expresstrafic.models.models import ContactMessage
from expresstrafic.schemas.contact import ContactIn
from expresstrafic.services.rate_limit import api_limiter
from expresstrafic.services.validators import sanitize_input

logger = logging.getLogger(__name__)

router = APIRouter(tags=["contact"])


@router.post("", status_code=status.HTTP_201_CREATED, dependencies=[Depends(api_limiter)])
async def send_message(payload: ContactIn, db: AsyncSession = Depends(get_session)):
    msg = ContactMessage(
        first_name=sanitize_input(payload.first_name, max_length=100),
        last_name=sanitize_input(payload.last_name, max_length=100),
        email=str(payload.email).lower(),
        phone=payload.phone,
        phone_code=payload.phone_code,
        subject=sanitize_input(payload.subject, max_length=100),
        sub_subject=sanitize_input(payload.sub_subject, max_length=100) if payload.sub_subject else None,
        message=sanitize_input(payload.message, max_length=2000),
    )
    db.add(msg)
    await db.commit()
    logger.info("Contact message stored id=%s", msg.id)
    return {"success": True, "message": "Message sent. We will get back to you shortly."}
