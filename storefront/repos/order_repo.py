# storefront/repos/order_repo.py
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, selectinload

from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def add_order(self, order: OrderModel) -> OrderModel:
        self.db.add(order)
        self.db.flush()
        return order

    def get_order(self, order_id: int) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel)
            .options(selectinload(OrderModel.items), selectinload(OrderModel.payment))
            .where(OrderModel.id == order_id)
        ).scalar_one_or_none()

    def list_orders(self, user_id: int | None = None, status: str | None = None) -> List[OrderModel]:
        stmt = select(OrderModel).options(
            selectinload(OrderModel.items), selectinload(OrderModel.payment)
        )
        if user_id is not None:
            stmt = stmt.where(OrderModel.user_id == user_id)
        if status is not None:
            stmt = stmt.where(OrderModel.status == status)
        return list(self.db.execute(stmt.order_by(OrderModel.id.desc())).scalars().all())

    def update_order_version(self, order_id: int, old_version: int, old_status: str, new_data: dict) -> int:
        # optimistic locking: UPDATE ... WHERE id, version i status sie zgadzaja
        result = self.db.execute(
            update(OrderModel)
            .where(
                OrderModel.id == order_id,
                OrderModel.version == old_version,
                OrderModel.status == old_status,
            )
            .values(**new_data)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    # statystyki

    def count_by_status(self) -> Dict[str, int]:
        rows = self.db.execute(
            select(OrderModel.status, func.count(OrderModel.id)).group_by(OrderModel.status)
        ).all()
        return {status: count for status, count in rows}

    def revenue(self, status: str) -> Decimal:
        total = self.db.execute(
            select(func.sum(OrderModel.total)).where(OrderModel.status == status)
        ).scalar_one_or_none()
        return Decimal(str(total)) if total is not None else Decimal("0.00")

    def top_products(self, status: str, limit: int = 5) -> List[Tuple[str, str, str, int]]:
        sold = func.sum(OrderItemModel.quantity).label("sold")
        stmt = (
            select(OrderItemModel.product_id, OrderItemModel.product_type, func.max(OrderItemModel.title), sold)
            .join(OrderModel, OrderModel.id == OrderItemModel.order_id)
            .where(OrderModel.status == status)
            .group_by(OrderItemModel.product_id, OrderItemModel.product_type)
            .order_by(sold.desc(), OrderItemModel.product_id)
            .limit(limit)
        )
        return [tuple(row) for row in self.db.execute(stmt).all()]

    def top_customers(self, status: str, limit: int = 5) -> List[Tuple[int, int, Decimal]]:
        spent = func.sum(OrderModel.total).label("spent")
        stmt = (
            select(OrderModel.user_id, func.count(OrderModel.id), spent)
            .where(OrderModel.status == status)
            .group_by(OrderModel.user_id)
            .order_by(spent.desc(), OrderModel.user_id)
            .limit(limit)
        )
        return [tuple(row) for row in self.db.execute(stmt).all()]

    def timeline(self) -> List[Tuple[datetime, str, Decimal]]:
        # (created_at, status, total) wszystkich zamowien, agregacja po dniach w serwisie
        stmt = select(OrderModel.created_at, OrderModel.status, OrderModel.total).order_by(OrderModel.created_at)
        return [tuple(row) for row in self.db.execute(stmt).all()]

    def refresh(self, order: OrderModel) -> OrderModel:
        self.db.refresh(order)
        return order

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
