from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session
from storefront.core.auth import Principal, get_current_principal
from storefront.core.errors import NotificationNotFound
from storefront.db.models import Notification
from storefront.db.session import get_db
from storefront.schemas import NotificationPage, NotificationRead
from storefront.services.notifications import ADMIN_CHANNEL
from storefront.services.orders import paginate

router = APIRouter()

def _visible_to(principal: Principal):
    recipients = [principal.id]
    if principal.is_admin:
        recipients.append(ADMIN_CHANNEL)
    return Notification.recipient.in_(recipients)

@router.get("/v1/notifications", response_model=NotificationPage)
def list_notifications(page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100),
                       principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    cond = _visible_to(principal)
    total = db.execute(select(func.count(Notification.id)).where(cond)).scalar_one()
    rows = db.execute(
        select(Notification).where(cond)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * limit).limit(limit)
    ).scalars().all()
    return {"data": rows, "pagination": paginate(total, page, limit)}

@router.patch("/v1/notifications/{notification_id}/read", response_model=NotificationRead)
def mark_read(notification_id: int, principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    note = db.execute(
        select(Notification).where(Notification.id == notification_id, _visible_to(principal))
    ).scalars().first()
    if not note:
        raise NotificationNotFound(notification_id)
    note.is_read = True
    db.commit(); db.refresh(note)
    return note
