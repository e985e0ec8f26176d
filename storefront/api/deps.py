from fastapi import Depends
from sqlalchemy.orm import Session
from storefront.db.session import get_db
from storefront.services.checkout import CheckoutOrchestrator
from storefront.services.notifications import NotificationService, Notifier
from storefront.services.orders import OrderService
from storefront.services.payos import PayOSClient, PaymentGateway
from storefront.services.reconciliation import PaymentReconciliationHandler

def get_payment_gateway() -> PaymentGateway:
    return PayOSClient()

def get_notifier(db: Session = Depends(get_db)) -> Notifier:
    return NotificationService(db)

def get_order_service(db: Session = Depends(get_db), notifier: Notifier = Depends(get_notifier)) -> OrderService:
    return OrderService(db, notifier=notifier)

def get_checkout(db: Session = Depends(get_db), gateway: PaymentGateway = Depends(get_payment_gateway),
                 orders: OrderService = Depends(get_order_service)) -> CheckoutOrchestrator:
    return CheckoutOrchestrator(db, gateway, orders=orders)

def get_reconciliation(db: Session = Depends(get_db), notifier: Notifier = Depends(get_notifier)) -> PaymentReconciliationHandler:
    return PaymentReconciliationHandler(db, notifier)
