from fastapi import APIRouter, Depends, HTTPException
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import select
from storefront.core.auth import require_admin
from storefront.db import models
from storefront.db.session import get_db
from storefront.schemas import ProductCreate, ProductUpdate, ProductRead

router = APIRouter()

@router.get('/', response_model=List[ProductRead])
def list_products(db: Session = Depends(get_db), q: Optional[str] = None, limit: int = 50, offset: int = 0, category_id: Optional[int] = None, active: Optional[bool] = None):
    stmt = select(models.Product)
    if q:
        stmt = stmt.where(models.Product.name.ilike(f"%{q.lower()}%"))
    if category_id is not None: stmt = stmt.where(models.Product.category_id == category_id)
    if active is not None: stmt = stmt.where(models.Product.is_active == active)
    stmt = stmt.order_by(models.Product.id).offset(offset).limit(limit)
    return db.execute(stmt).scalars().all()

@router.get('/{product_id}', response_model=ProductRead)
def get_product(product_id: int, db: Session = Depends(get_db)):
    obj = db.get(models.Product, product_id)
    if not obj: raise HTTPException(status_code=404, detail='Product not found')
    return obj

@router.post('/', response_model=ProductRead, status_code=201)
def create_product(payload: ProductCreate, db: Session = Depends(get_db), _=Depends(require_admin)):
    obj = models.Product(**payload.model_dump())
    db.add(obj); db.commit(); db.refresh(obj)
    return obj

@router.patch('/{product_id}', response_model=ProductRead)
def update_product(product_id: int, payload: ProductUpdate, db: Session = Depends(get_db), _=Depends(require_admin)):
    # stock is not editable here; it moves through /inventory/restock and orders
    obj = db.get(models.Product, product_id)
    if not obj: raise HTTPException(status_code=404, detail='Product not found')
    for k, v in payload.model_dump(exclude_unset=True).items(): setattr(obj, k, v)
    db.add(obj); db.commit(); db.refresh(obj)
    return obj
