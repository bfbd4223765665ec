"""SQLAlchemy-backed store with carts kept in Redis."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator

import structlog
from redis import Redis
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.db import models
from storefront.db.session import make_engine, make_session_factory
from storefront.errors import DuplicateCouponError, StorageFailure, StorefrontError
from storefront.models import (
    Cart,
    Coupon,
    Order,
    OrderItem,
    OrderStatus,
    Product,
    money,
)
from storefront.store.cart_store import RedisCartStore

log = structlog.get_logger(__name__)


def _aware(dt: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def _product(row: models.Product) -> Product:
    return Product(
        id=row.id,
        name=row.name,
        price=money(row.price),
        stock=row.stock,
        active=row.active,
        description=row.description or "",
        category=row.category or "",
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _order(row: models.Order) -> Order:
    return Order(
        id=row.id,
        user_id=row.user_id,
        items=tuple(
            OrderItem(
                product_id=it.product_id,
                product_name=it.product_name,
                unit_price=money(it.unit_price),
                quantity=it.quantity,
                subtotal=money(it.subtotal),
            )
            for it in row.items
        ),
        subtotal=money(row.subtotal),
        discount_amount=money(row.discount_amount),
        total=money(row.total),
        status=OrderStatus(row.status),
        discount_code=row.discount_code,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _coupon(row: models.Coupon) -> Coupon:
    return Coupon(
        id=row.id,
        code=row.code,
        discount_type=row.discount_type,
        discount_value=money(row.discount_value),
        is_used=row.is_used,
        used_by=row.used_by,
        used_at=_aware(row.used_at),
        expires_at=_aware(row.expires_at),
        created_at=_aware(row.created_at),
    )


def _coupon_values(coupon: Coupon) -> dict:
    return dict(
        code=coupon.code,
        discount_type=coupon.discount_type,
        discount_value=coupon.discount_value,
        is_used=coupon.is_used,
        used_by=coupon.used_by,
        used_at=coupon.used_at,
        expires_at=coupon.expires_at,
    )


class SqlStore:
    """``Store`` over a SQL database.

    Stock, coupon use and order status are written with conditional
    ``UPDATE ... WHERE`` so several processes sharing a database stay
    consistent; within one process transactions are also serialized by a lock.
    Cart deletions requested inside a transaction run only after it commits.
    """

    def __init__(self, session_factory, carts):
        self.session_factory = session_factory
        self.carts = carts
        self._lock = threading.RLock()
        self._local = threading.local()

    @classmethod
    def from_urls(cls, dsn: str, redis_url: str) -> "SqlStore":
        engine = make_engine(dsn)
        return cls(make_session_factory(engine), RedisCartStore(Redis.from_url(redis_url, decode_responses=True)))

    def _current(self) -> Session | None:
        return getattr(self._local, "session", None)

    def _pending_deletes(self) -> list[str]:
        return getattr(self._local, "cart_deletes", [])

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            if self._current() is not None:
                yield
                return
            session = self.session_factory()
            self._local.session = session
            self._local.cart_deletes = []
            try:
                yield
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                log.error("storage.failure", operation="commit", error=str(e))
                raise StorageFailure("commit", e) from e
            except BaseException:
                session.rollback()
                raise
            finally:
                session.close()
                self._local.session = None
                deletes, self._local.cart_deletes = self._local.cart_deletes, []
            for user_id in deletes:
                try:
                    self.carts.delete(user_id)
                except StorefrontError:
                    # The SQL side is committed; a stale cart is recoverable.
                    log.error("cart.clear_after_commit_failed", user_id=user_id)

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        current = self._current()
        if current is not None:
            try:
                yield current
                current.flush()
            except SQLAlchemyError as e:
                log.error("storage.failure", operation=operation, error=str(e))
                raise StorageFailure(operation, e) from e
            return
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            log.error("storage.failure", operation=operation, error=str(e))
            raise StorageFailure(operation, e) from e
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    # Products
    def get_product(self, product_id: str) -> Product | None:
        with self._session("product.get") as s:
            row = s.get(models.Product, product_id)
            return _product(row) if row else None

    def list_products(self, include_inactive: bool = False) -> list[Product]:
        with self._session("product.list") as s:
            stmt = select(models.Product).order_by(models.Product.created_at)
            if not include_inactive:
                stmt = stmt.where(models.Product.active.is_(True))
            return [_product(r) for r in s.execute(stmt).scalars().all()]

    def save_product(self, product: Product) -> Product:
        with self._session("product.save") as s:
            s.merge(models.Product(
                id=product.id,
                name=product.name,
                description=product.description,
                category=product.category,
                price=product.price,
                stock=product.stock,
                active=product.active,
                created_at=product.created_at,
                updated_at=product.updated_at,
            ))
        return product

    def update_stock(self, product_id: str, expected: int, stock: int, at: datetime) -> bool:
        with self._session("product.update_stock") as s:
            stmt = (
                update(models.Product)
                .where(models.Product.id == product_id, models.Product.stock == expected)
                .values(stock=stock, updated_at=at)
            )
            return s.execute(stmt).rowcount == 1

    # Carts
    def get_cart(self, user_id: str) -> Cart | None:
        if user_id in self._pending_deletes():
            return None
        return self.carts.get(user_id)

    def save_cart(self, cart: Cart) -> Cart:
        pending = self._pending_deletes()
        if cart.user_id in pending:
            pending.remove(cart.user_id)
        return self.carts.put(cart)

    def delete_cart(self, user_id: str) -> bool:
        if self._current() is None:
            return self.carts.delete(user_id)
        existed = self.get_cart(user_id) is not None
        self._local.cart_deletes.append(user_id)
        return existed

    # Orders
    def get_order(self, order_id: str) -> Order | None:
        with self._session("order.get") as s:
            row = s.get(models.Order, order_id)
            return _order(row) if row else None

    def list_orders(self, user_id: str | None = None) -> list[Order]:
        with self._session("order.list") as s:
            stmt = select(models.Order).order_by(models.Order.created_at)
            if user_id is not None:
                stmt = stmt.where(models.Order.user_id == user_id)
            return [_order(r) for r in s.execute(stmt).scalars().all()]

    def save_order(self, order: Order) -> Order:
        with self._session("order.save") as s:
            row = s.get(models.Order, order.id)
            if row is not None:
                row.status = order.status
                row.updated_at = order.updated_at
                return order
            row = models.Order(
                id=order.id,
                user_id=order.user_id,
                status=order.status,
                subtotal=order.subtotal,
                discount_amount=order.discount_amount,
                discount_code=order.discount_code,
                total=order.total,
                created_at=order.created_at,
                updated_at=order.updated_at,
            )
            for it in order.items:
                row.items.append(models.OrderItem(
                    product_id=it.product_id,
                    product_name=it.product_name,
                    unit_price=it.unit_price,
                    quantity=it.quantity,
                    subtotal=it.subtotal,
                ))
            s.add(row)
        return order

    def update_order_status(
        self, order_id: str, expected: OrderStatus, status: OrderStatus, at: datetime
    ) -> bool:
        with self._session("order.update_status") as s:
            stmt = (
                update(models.Order)
                .where(models.Order.id == order_id, models.Order.status == expected)
                .values(status=status, updated_at=at)
            )
            return s.execute(stmt).rowcount == 1

    # Coupons
    def get_coupon(self, coupon_id: str) -> Coupon | None:
        with self._session("coupon.get") as s:
            row = s.get(models.Coupon, coupon_id)
            return _coupon(row) if row else None

    def get_coupon_by_code(self, code: str) -> Coupon | None:
        with self._session("coupon.get_by_code") as s:
            row = s.execute(select(models.Coupon).where(models.Coupon.code == code)).scalar_one_or_none()
            return _coupon(row) if row else None

    def list_coupons(self) -> list[Coupon]:
        with self._session("coupon.list") as s:
            rows = s.execute(select(models.Coupon).order_by(models.Coupon.created_at)).scalars().all()
            return [_coupon(r) for r in rows]

    def add_coupon(self, coupon: Coupon) -> Coupon:
        with self._session("coupon.add") as s:
            if s.execute(select(models.Coupon.id).where(models.Coupon.code == coupon.code)).first():
                raise DuplicateCouponError(coupon.code)
            s.add(models.Coupon(id=coupon.id, created_at=coupon.created_at, **_coupon_values(coupon)))
            try:
                s.flush()
            except IntegrityError as e:
                raise DuplicateCouponError(coupon.code) from e
        return coupon

    def replace_coupon(self, expected: Coupon, coupon: Coupon) -> bool:
        with self._session("coupon.replace") as s:
            stmt = (
                update(models.Coupon)
                .where(models.Coupon.id == expected.id, models.Coupon.is_used == expected.is_used)
                .values(**_coupon_values(coupon))
            )
            return s.execute(stmt).rowcount == 1
