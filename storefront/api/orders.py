from fastapi import APIRouter, Depends, Query
from typing import Optional
from storefront.api.deps import get_checkout, get_order_service
from storefront.core.auth import Principal, get_current_principal, get_optional_principal, require_admin
from storefront.schemas import (
    CheckoutRequest, CheckoutResponse, OrderItemRead, OrderItemUpdate, OrderPage, OrderRead, OrderUpdate,
)
from storefront.services.checkout import CheckoutLine, CheckoutOrchestrator, ShippingInfo
from storefront.services.orders import OrderService, paginate

router = APIRouter()

@router.post("/v1/orders/checkout", response_model=CheckoutResponse, status_code=201)
def checkout(payload: CheckoutRequest,
             principal: Optional[Principal] = Depends(get_optional_principal),
             svc: CheckoutOrchestrator = Depends(get_checkout)):
    result = svc.checkout(
        items=[CheckoutLine(product_id=it.product_id, quantity=it.quantity) for it in payload.items],
        payment_method=payload.payment_method,
        shipping=ShippingInfo(
            shipping_address=payload.shipping_address,
            customer_name=payload.customer_name,
            customer_phone=payload.customer_phone,
            customer_email=str(payload.customer_email) if payload.customer_email else None,
            notes=payload.notes,
        ),
        voucher_ids=payload.voucher_ids,
        principal=principal,
    )
    return CheckoutResponse(
        order=OrderRead.model_validate(result.order),
        checkout_url=result.checkout_url,
        applied_voucher_ids=result.applied_voucher_ids,
    )

@router.get("/v1/orders", response_model=OrderPage)
def list_orders(page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100),
                principal: Principal = Depends(get_current_principal),
                svc: OrderService = Depends(get_order_service)):
    rows, total = svc.list_for(principal, page=page, limit=limit)
    return {"data": rows, "pagination": paginate(total, page, limit)}

@router.get("/v1/orders/{order_id}", response_model=OrderRead)
def get_order(order_id: int, principal: Principal = Depends(get_current_principal),
              svc: OrderService = Depends(get_order_service)):
    return svc.get_for(order_id, principal)

@router.patch("/v1/orders/{order_id}", response_model=OrderRead)
def update_order(order_id: int, payload: OrderUpdate, _=Depends(require_admin),
                 svc: OrderService = Depends(get_order_service)):
    return svc.update(order_id, payload.model_dump(exclude_unset=True))

@router.delete("/v1/orders/{order_id}")
def delete_order(order_id: int, _=Depends(require_admin), svc: OrderService = Depends(get_order_service)):
    svc.delete(order_id)
    return {"message": "Order deleted", "id": order_id}

@router.patch("/v1/order-items/{item_id}", response_model=OrderItemRead)
def update_order_item(item_id: int, payload: OrderItemUpdate, _=Depends(require_admin),
                      svc: OrderService = Depends(get_order_service)):
    return svc.update_item_quantity(item_id, payload.quantity)

@router.delete("/v1/order-items/{item_id}")
def delete_order_item(item_id: int, _=Depends(require_admin), svc: OrderService = Depends(get_order_service)):
    svc.delete_item(item_id)
    return {"message": "Order item deleted", "id": item_id}
