from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session
from storefront.core.auth import require_admin
from storefront.core.errors import DuplicateEntity, ValidationError, VoucherNotFound
from storefront.db.models import Voucher
from storefront.db.session import get_db
from storefront.schemas import VoucherCreate, VoucherRead, VoucherUpdate
from storefront.services.orders import paginate

router = APIRouter()

def _check_window(start, end):
    if start is not None and end is not None and end < start:
        raise ValidationError("end_date must not be before start_date", field="end_date")

def _get(db: Session, voucher_id: int) -> Voucher:
    obj = db.get(Voucher, voucher_id)
    if not obj:
        raise VoucherNotFound(voucher_id)
    return obj

@router.get('/')
def list_vouchers(page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100), db: Session = Depends(get_db)):
    total = db.execute(select(func.count(Voucher.id))).scalar_one()
    rows = db.execute(
        select(Voucher).order_by(Voucher.created_at.desc(), Voucher.id.desc()).offset((page - 1) * limit).limit(limit)
    ).scalars().all()
    return {"data": [VoucherRead.model_validate(v) for v in rows], "pagination": paginate(total, page, limit)}

@router.get('/{voucher_id}', response_model=VoucherRead)
def get_voucher(voucher_id: int, db: Session = Depends(get_db)):
    return _get(db, voucher_id)

@router.post('/', response_model=VoucherRead, status_code=201)
def create_voucher(payload: VoucherCreate, db: Session = Depends(get_db), _=Depends(require_admin)):
    _check_window(payload.start_date, payload.end_date)
    if db.query(Voucher).filter(Voucher.code == payload.code).first():
        raise DuplicateEntity(f"Voucher code {payload.code} already exists")
    obj = Voucher(**payload.model_dump(), used_count=0)
    db.add(obj); db.commit(); db.refresh(obj)
    return obj

@router.patch('/{voucher_id}', response_model=VoucherRead)
def update_voucher(voucher_id: int, payload: VoucherUpdate, db: Session = Depends(get_db), _=Depends(require_admin)):
    obj = _get(db, voucher_id)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get('code') and changes['code'] != obj.code:
        if db.query(Voucher).filter(Voucher.code == changes['code']).first():
            raise DuplicateEntity(f"Voucher code {changes['code']} already exists")
    _check_window(changes.get('start_date', obj.start_date), changes.get('end_date', obj.end_date))
    limit = changes.get('usage_limit')
    if limit is not None and limit < (obj.used_count or 0):
        raise ValidationError(
            f"usage_limit {limit} is below the {obj.used_count} uses already counted", field="usage_limit"
        )
    for k, v in changes.items(): setattr(obj, k, v)
    db.add(obj); db.commit(); db.refresh(obj)
    return obj

@router.delete('/{voucher_id}')
def delete_voucher(voucher_id: int, db: Session = Depends(get_db), _=Depends(require_admin)):
    obj = _get(db, voucher_id)
    db.delete(obj); db.commit()
    return {"message": "Voucher deleted", "id": voucher_id}
