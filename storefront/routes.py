from typing import Optional, Union

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict

from storefront.admin import AdminReadService
from storefront.auth import verify_token
from storefront.checkout import CheckoutRequest, CheckoutService, StatusUpdateService

router = APIRouter()


class PaymentIntentRequest(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    productPrice: Optional[Union[float, str]] = None
    productName: Optional[str] = None
    email: Optional[str] = None
    fullName: Optional[str] = None
    address1: Optional[str] = None
    address2: Optional[str] = None
    zip: Optional[str] = None
    city: Optional[str] = None
    phone: Optional[str] = None
    delivery: Optional[str] = None


class StatusRequest(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    paymentIntentId: Optional[str] = None
    status: Optional[str] = None


class LoginRequest(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    password: Optional[str] = None


def get_checkout(request: Request) -> CheckoutService:
    return request.app.state.checkout


def get_status_updates(request: Request) -> StatusUpdateService:
    return request.app.state.status_updates


def get_admin(request: Request) -> AdminReadService:
    return request.app.state.admin


@router.post("/create-payment-intent")
def create_payment_intent(
    body: PaymentIntentRequest,
    checkout: CheckoutService = Depends(get_checkout),
):
    result = checkout.checkout(CheckoutRequest(
        product_price=body.productPrice,
        product_name=body.productName,
        email=body.email,
        full_name=body.fullName,
        address1=body.address1,
        address2=body.address2,
        zip=body.zip,
        city=body.city,
        phone=body.phone,
        delivery=body.delivery,
    ))
    return {
        "clientSecret": result.client_secret,
        "paymentIntentId": result.payment_intent_id,
        "amount": float(result.amount),
    }


@router.post("/update-order-status")
def update_order_status(
    body: StatusRequest,
    status_updates: StatusUpdateService = Depends(get_status_updates),
):
    status_updates.update(body.paymentIntentId, body.status)
    return {"success": True}


@router.post("/admin-login")
def admin_login(body: LoginRequest, admin: AdminReadService = Depends(get_admin)):
    return admin.login(body.password)


@router.get("/admin/orders")
def admin_orders(admin: AdminReadService = Depends(get_admin), auth=Depends(verify_token)):
    return admin.listing()


@router.get("/config")
def public_config(request: Request):
    return {"publishableKey": request.app.state.settings.stripe_public_key}


@router.get("/health")
def health(request: Request):
    return {"ok": True, "hasDatabase": request.app.state.store.has_database}
