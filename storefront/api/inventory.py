from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from storefront.core.auth import admin_or_internal
from storefront.core.errors import ProductNotFound
from storefront.db.models import Product
from storefront.db.session import get_db
from storefront.schemas import RestockRequest
from storefront.services.inventory import InventoryLedger

router = APIRouter()

@router.post("/v1/inventory/restock")
def restock(req: RestockRequest, db: Session = Depends(get_db), _=Depends(admin_or_internal)):
    for it in req.items:
        if db.get(Product, it.product_id) is None:
            raise ProductNotFound(it.product_id)
    ledger = InventoryLedger(db)
    for it in req.items:
        ledger.release(it.product_id, it.qty)
    db.commit()
    return {"status": "restocked"}

@router.get("/v1/inventory/{product_id}")
def stock_level(product_id: int, db: Session = Depends(get_db), _=Depends(admin_or_internal)):
    obj = db.get(Product, product_id)
    if not obj:
        raise ProductNotFound(product_id)
    return {"product_id": obj.id, "stock_quantity": obj.stock_quantity, "is_active": obj.is_active}
