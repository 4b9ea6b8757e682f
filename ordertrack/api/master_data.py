from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ordertrack.infrastructure.db import get_db
from ordertrack.application.access import Actor
from ordertrack.application.master_data import (
    CustomerService, ProductTypeService, UserService, VendorService,
)
from ordertrack.application.schemas import (
    CustomerCreate, CustomerRead, CustomerUpdate,
    ProductTypeCreate, ProductTypeRead, ProductTypeUpdate,
    TokenRequest, TokenResponse, UserCreate, UserRead, UserRoleChange,
    VendorCreate, VendorRead, VendorUpdate,
)
from .deps import current_actor
from .envelope import ok

auth_router = APIRouter(prefix="/auth", tags=["auth"])
customers_router = APIRouter(prefix="/api/customers", tags=["customers"])
vendors_router = APIRouter(prefix="/api/vendors", tags=["vendors"])
product_types_router = APIRouter(prefix="/api/product-types", tags=["product-types"])
users_router = APIRouter(prefix="/api/users", tags=["users"])


@auth_router.post("/token")
def issue_token(payload: TokenRequest, db: Session = Depends(get_db)):
    user, token = UserService(db).login(payload.phone, payload.password)
    return ok(TokenResponse(access_token=token, user=UserRead.model_validate(user)))


@auth_router.post("/bootstrap", status_code=201)
def bootstrap_owner(payload: UserCreate, db: Session = Depends(get_db)):
    """Create the first owner account; refused once any user exists."""
    return ok(UserRead.model_validate(UserService(db).bootstrap_owner(payload)))


# ---- customers ----

@customers_router.get("")
def list_customers(
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    return ok([CustomerRead.model_validate(c) for c in CustomerService(db).list(search=search)])


@customers_router.post("", status_code=201)
def create_customer(payload: CustomerCreate, db: Session = Depends(get_db), actor: Actor = Depends(current_actor)):
    return ok(CustomerRead.model_validate(CustomerService(db).create(payload, actor)))


@customers_router.get("/{customer_id}")
def get_customer(customer_id: str, db: Session = Depends(get_db), actor: Actor = Depends(current_actor)):
    return ok(CustomerRead.model_validate(CustomerService(db).get(customer_id)))


@customers_router.patch("/{customer_id}")
def update_customer(
    customer_id: str,
    payload: CustomerUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    return ok(CustomerRead.model_validate(CustomerService(db).update(customer_id, payload, actor)))


@customers_router.delete("/{customer_id}")
def delete_customer(customer_id: str, db: Session = Depends(get_db), actor: Actor = Depends(current_actor)):
    return ok(CustomerRead.model_validate(CustomerService(db).delete(customer_id, actor)))


# ---- vendors ----

@vendors_router.get("")
def list_vendors(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    vendors = VendorService(db).list(include_inactive=include_inactive)
    return ok([VendorRead.model_validate(v) for v in vendors])


@vendors_router.post("", status_code=201)
def create_vendor(payload: VendorCreate, db: Session = Depends(get_db), actor: Actor = Depends(current_actor)):
    return ok(VendorRead.model_validate(VendorService(db).create(payload, actor)))


@vendors_router.patch("/{vendor_id}")
def update_vendor(
    vendor_id: str,
    payload: VendorUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    return ok(VendorRead.model_validate(VendorService(db).update(vendor_id, payload, actor)))


@vendors_router.post("/{vendor_id}/deactivate")
def deactivate_vendor(vendor_id: str, db: Session = Depends(get_db), actor: Actor = Depends(current_actor)):
    return ok(VendorRead.model_validate(VendorService(db).deactivate(vendor_id, actor)))


@vendors_router.post("/{vendor_id}/reactivate")
def reactivate_vendor(vendor_id: str, db: Session = Depends(get_db), actor: Actor = Depends(current_actor)):
    return ok(VendorRead.model_validate(VendorService(db).reactivate(vendor_id, actor)))


# ---- product types ----

@product_types_router.get("")
def list_product_types(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    product_types = ProductTypeService(db).list(include_inactive=include_inactive)
    return ok([ProductTypeRead.model_validate(p) for p in product_types])


@product_types_router.post("", status_code=201)
def create_product_type(
    payload: ProductTypeCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    return ok(ProductTypeRead.model_validate(ProductTypeService(db).create(payload, actor)))


@product_types_router.patch("/{product_type_id}")
def update_product_type(
    product_type_id: str,
    payload: ProductTypeUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    product_type = ProductTypeService(db).update(product_type_id, payload, actor)
    return ok(ProductTypeRead.model_validate(product_type))


@product_types_router.post("/{product_type_id}/deactivate")
def deactivate_product_type(
    product_type_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    return ok(ProductTypeRead.model_validate(ProductTypeService(db).deactivate(product_type_id, actor)))


@product_types_router.post("/{product_type_id}/reactivate")
def reactivate_product_type(
    product_type_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    return ok(ProductTypeRead.model_validate(ProductTypeService(db).reactivate(product_type_id, actor)))


# ---- users ----

@users_router.get("")
def list_users(db: Session = Depends(get_db), actor: Actor = Depends(current_actor)):
    return ok([UserRead.model_validate(u) for u in UserService(db).list(actor)])


@users_router.post("", status_code=201)
def create_user(payload: UserCreate, db: Session = Depends(get_db), actor: Actor = Depends(current_actor)):
    return ok(UserRead.model_validate(UserService(db).create(payload, actor)))


@users_router.post("/{user_id}/role")
def change_user_role(
    user_id: str,
    payload: UserRoleChange,
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    return ok(UserRead.model_validate(UserService(db).change_role(user_id, payload.role, actor)))


@users_router.post("/{user_id}/deactivate")
def deactivate_user(user_id: str, db: Session = Depends(get_db), actor: Actor = Depends(current_actor)):
    return ok(UserRead.model_validate(UserService(db).deactivate(user_id, actor)))


@users_router.post("/{user_id}/revoke-sessions")
def revoke_user_sessions(user_id: str, db: Session = Depends(get_db), actor: Actor = Depends(current_actor)):
    return ok(UserRead.model_validate(UserService(db).revoke_sessions(user_id, actor)))
