"""
Customers, vendors, product types and users.

Rows are never removed: customers are soft-deleted, vendors and product
types are deactivated, so historical orders still resolve their references.
"""

from typing import Callable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shared.core import get_logger
from ordertrack.domain.ids import EntityKind, generate_id
from ordertrack.domain.models import Customer, ProductType, User, Vendor, utcnow
from ordertrack.domain.workflow import Role
from .access import Action, Actor, authorize
from .errors import ConflictError, NotFoundError, UnauthorizedError
from .schemas import (
    CustomerCreate, CustomerUpdate, ProductTypeCreate, ProductTypeUpdate,
    UserCreate, VendorCreate, VendorUpdate,
)
from .security import create_access_token, hash_password, verify_password

logger = get_logger(__name__)


class _MasterDataService:
    def __init__(self, db: Session, clock: Callable = utcnow):
        self.db = db
        self.clock = clock

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def _apply(self, obj, changes: dict):
        for key, value in changes.items():
            if value is not None:
                setattr(obj, key, value)
        obj.updated_at = self.clock()
        return self._save(obj)


class CustomerService(_MasterDataService):
    def list(self, search: Optional[str] = None, include_deleted: bool = False) -> List[Customer]:
        stmt = select(Customer).order_by(Customer.name.asc())
        if not include_deleted:
            stmt = stmt.where(Customer.is_deleted.is_(False))
        if search and search.strip():
            stmt = stmt.where(Customer.name.icontains(search.strip(), autoescape=True))
        return list(self.db.execute(stmt).scalars())

    def get(self, customer_id: str) -> Customer:
        customer = self.db.get(Customer, customer_id)
        if customer is None or customer.is_deleted:
            raise NotFoundError(f"Customer {customer_id} not found")
        return customer

    def create(self, data: CustomerCreate, actor: Actor) -> Customer:
        authorize(actor, Action.CUSTOMER_CREATE)
        now = self.clock()
        obj = Customer(
            id=generate_id(EntityKind.CUSTOMER),
            name=data.name,
            phone=data.phone,
            notes=data.notes,
            is_deleted=False,
            is_test=data.is_test,
            created_at=now,
            updated_at=now,
        )
        self._save(obj)
        logger.info(f"Customer {obj.id} created", extra={'extra_fields': {'customer_id': obj.id}})
        return obj

    def update(self, customer_id: str, data: CustomerUpdate, actor: Actor) -> Customer:
        authorize(actor, Action.CUSTOMER_UPDATE)
        return self._apply(self.get(customer_id), data.model_dump(exclude_unset=True))

    def delete(self, customer_id: str, actor: Actor) -> Customer:
        authorize(actor, Action.CUSTOMER_DELETE)
        customer = self.get(customer_id)
        customer.is_deleted = True
        customer.updated_at = self.clock()
        self._save(customer)
        logger.info(f"Customer {customer_id} deleted", extra={'extra_fields': {'customer_id': customer_id}})
        return customer


class VendorService(_MasterDataService):
    def list(self, include_inactive: bool = False) -> List[Vendor]:
        stmt = select(Vendor).where(Vendor.is_deleted.is_(False)).order_by(Vendor.name.asc())
        if not include_inactive:
            stmt = stmt.where(Vendor.active.is_(True))
        return list(self.db.execute(stmt).scalars())

    def get(self, vendor_id: str) -> Vendor:
        vendor = self.db.get(Vendor, vendor_id)
        if vendor is None or vendor.is_deleted:
            raise NotFoundError(f"Vendor {vendor_id} not found")
        return vendor

    def create(self, data: VendorCreate, actor: Actor) -> Vendor:
        authorize(actor, Action.VENDOR_CREATE)
        now = self.clock()
        obj = Vendor(
            id=generate_id(EntityKind.VENDOR),
            name=data.name,
            service_type=data.service_type,
            phone=data.phone,
            notes=data.notes,
            active=True,
            is_deleted=False,
            is_test=data.is_test,
            created_at=now,
            updated_at=now,
        )
        return self._save(obj)

    def update(self, vendor_id: str, data: VendorUpdate, actor: Actor) -> Vendor:
        authorize(actor, Action.VENDOR_UPDATE)
        return self._apply(self.get(vendor_id), data.model_dump(exclude_unset=True))

    def set_active(self, vendor_id: str, active: bool, actor: Actor) -> Vendor:
        authorize(actor, Action.VENDOR_REACTIVATE if active else Action.VENDOR_DEACTIVATE)
        vendor = self.get(vendor_id)
        if vendor.active == active:
            return vendor
        vendor.active = active
        vendor.updated_at = self.clock()
        self._save(vendor)
        logger.info(
            f"Vendor {vendor_id} {'reactivated' if active else 'deactivated'}",
            extra={'extra_fields': {'vendor_id': vendor_id, 'actor_user_id': actor.user_id}},
        )
        return vendor

    def deactivate(self, vendor_id: str, actor: Actor) -> Vendor:
        return self.set_active(vendor_id, False, actor)

    def reactivate(self, vendor_id: str, actor: Actor) -> Vendor:
        return self.set_active(vendor_id, True, actor)


class ProductTypeService(_MasterDataService):
    def list(self, include_inactive: bool = False) -> List[ProductType]:
        stmt = select(ProductType).where(ProductType.is_deleted.is_(False)).order_by(ProductType.name.asc())
        if not include_inactive:
            stmt = stmt.where(ProductType.active.is_(True))
        return list(self.db.execute(stmt).scalars())

    def get(self, product_type_id: str) -> ProductType:
        product_type = self.db.get(ProductType, product_type_id)
        if product_type is None or product_type.is_deleted:
            raise NotFoundError(f"Product type {product_type_id} not found")
        return product_type

    def create(self, data: ProductTypeCreate, actor: Actor) -> ProductType:
        authorize(actor, Action.PRODUCT_TYPE_CREATE)
        now = self.clock()
        obj = ProductType(
            id=generate_id(EntityKind.PRODUCT_TYPE),
            name=data.name,
            properties=dict(data.properties),
            active=True,
            is_deleted=False,
            is_test=data.is_test,
            created_at=now,
            updated_at=now,
        )
        return self._save(obj)

    def update(self, product_type_id: str, data: ProductTypeUpdate, actor: Actor) -> ProductType:
        authorize(actor, Action.PRODUCT_TYPE_UPDATE)
        return self._apply(self.get(product_type_id), data.model_dump(exclude_unset=True))

    def set_active(self, product_type_id: str, active: bool, actor: Actor) -> ProductType:
        authorize(actor, Action.PRODUCT_TYPE_REACTIVATE if active else Action.PRODUCT_TYPE_DEACTIVATE)
        product_type = self.get(product_type_id)
        if product_type.active == active:
            return product_type
        product_type.active = active
        product_type.updated_at = self.clock()
        self._save(product_type)
        logger.info(
            f"Product type {product_type_id} {'reactivated' if active else 'deactivated'}",
            extra={'extra_fields': {'product_type_id': product_type_id, 'actor_user_id': actor.user_id}},
        )
        return product_type

    def deactivate(self, product_type_id: str, actor: Actor) -> ProductType:
        return self.set_active(product_type_id, False, actor)

    def reactivate(self, product_type_id: str, actor: Actor) -> ProductType:
        return self.set_active(product_type_id, True, actor)


class UserService(_MasterDataService):
    def list(self, actor: Actor) -> List[User]:
        authorize(actor, Action.USER_MANAGE)
        stmt = select(User).where(User.is_deleted.is_(False)).order_by(User.name.asc())
        return list(self.db.execute(stmt).scalars())

    def get(self, user_id: str) -> User:
        user = self.db.get(User, user_id)
        if user is None or user.is_deleted:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def create(self, data: UserCreate, actor: Optional[Actor]) -> User:
        authorize(actor, Action.USER_MANAGE)
        return self._create(data)

    def bootstrap_owner(self, data: UserCreate) -> User:
        """Create the first OWNER of an empty installation."""
        if self.db.execute(select(User.id).limit(1)).first() is not None:
            raise ConflictError("Users already exist; ask an owner to add accounts")
        return self._create(data.model_copy(update={"role": Role.OWNER}))

    def _create(self, data: UserCreate) -> User:
        now = self.clock()
        obj = User(
            id=generate_id(EntityKind.USER),
            name=data.name,
            phone=data.phone,
            role=data.role,
            password_hash=hash_password(data.password),
            active=True,
            is_deleted=False,
            is_test=data.is_test,
            created_at=now,
            updated_at=now,
        )
        try:
            self._save(obj)
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictError(f"A user with phone {data.phone} already exists") from exc
        logger.info(f"User {obj.id} created", extra={'extra_fields': {'user_id': obj.id, 'role': obj.role.value}})
        return obj

    def change_role(self, user_id: str, role: Role, actor: Actor) -> User:
        authorize(actor, Action.USER_MANAGE)
        user = self.get(user_id)
        if user.role == Role.OWNER and Role(role) != Role.OWNER and self._active_owners() <= 1:
            raise ConflictError("Cannot demote the last active owner")
        user.role = Role(role)
        # Existing tokens carry the old role
        user.token_revoked_before = self.clock()
        user.updated_at = user.token_revoked_before
        return self._save(user)

    def deactivate(self, user_id: str, actor: Actor) -> User:
        authorize(actor, Action.USER_MANAGE)
        if user_id == actor.user_id:
            raise ConflictError("Owners cannot deactivate their own account")
        user = self.get(user_id)
        user.active = False
        user.token_revoked_before = self.clock()
        user.updated_at = user.token_revoked_before
        return self._save(user)

    def _active_owners(self) -> int:
        stmt = select(func.count()).select_from(User).where(
            User.role == Role.OWNER, User.active.is_(True), User.is_deleted.is_(False)
        )
        return self.db.execute(stmt).scalar_one()

    def revoke_sessions(self, user_id: str, actor: Actor) -> User:
        authorize(actor, Action.USER_MANAGE)
        user = self.get(user_id)
        user.token_revoked_before = self.clock()
        user.updated_at = user.token_revoked_before
        return self._save(user)

    def login(self, phone: str, password: str) -> tuple:
        """Return ``(user, access_token)`` for valid credentials."""
        user = self.db.execute(select(User).where(User.phone == phone)).scalar_one_or_none()
        if (
            user is None
            or user.is_deleted
            or not user.active
            or not verify_password(password, user.password_hash)
        ):
            logger.warning("Failed login attempt", extra={'extra_fields': {'phone': phone}})
            raise UnauthorizedError("Invalid phone or password")
        user.last_login_at = self.clock()
        self._save(user)
        return user, create_access_token(user.id, Role(user.role).value)
