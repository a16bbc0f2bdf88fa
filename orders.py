"""
Order lifecycle.

Orders are created from a checkout submission for the signed-in user and
then move between Processing, Shipped, Delivered and Cancelled. By default
any status may be set from any other. With ``strict_transitions`` enabled
only the moves listed in ``TRANSITIONS`` are accepted.

The order total is supplied by the caller and stored as given. Callers are
responsible for computing it from the items.
"""
import logging
import random
from datetime import datetime, timezone
from typing import Dict, FrozenSet, List, Optional

import config
from cart import CartService
from database import KeyValueStore, get_documents, save_documents
from errors import InvalidTransition, Unauthenticated, ValidationError
from identity import SessionContext
from schemas import ORDER_STATUSES, Address, Order, OrderItem, OrderStatus, PaymentMethod, User

logger = logging.getLogger(__name__)

ORDERS_KEY = "orders"
FIRST_ORDER_ID = 1001

TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "Processing": frozenset({"Shipped", "Cancelled"}),
    "Shipped": frozenset({"Delivered", "Cancelled"}),
    "Delivered": frozenset(),
    "Cancelled": frozenset(),
}


class OrderService:
    def __init__(self, store: KeyValueStore, session: SessionContext, strict_transitions: Optional[bool] = None):
        self.store = store
        self.session = session
        self.strict_transitions = config.STRICT_ORDER_TRANSITIONS if strict_transitions is None else strict_transitions

    def _load(self) -> List[Order]:
        return [Order.model_validate(doc) for doc in get_documents(self.store, ORDERS_KEY)]

    def _save(self, orders: List[Order]) -> None:
        save_documents(self.store, ORDERS_KEY, [o.model_dump(mode="json") for o in orders])

    def _append(self, user_id: int, items: List[OrderItem], total: float, address: Address, payment_method: PaymentMethod) -> Order:
        with self.store.locked():
            orders = self._load()
            order = Order(
                id=max((o.id for o in orders), default=FIRST_ORDER_ID - 1) + 1,
                user_id=user_id,
                date=datetime.now(timezone.utc),
                items=items,
                total=total,
                status="Processing",
                address=address,
                payment_method=payment_method,
            )
            orders.append(order)
            self._save(orders)
        return order

    # Queries

    def get_all_orders(self) -> List[Order]:
        return self._load()

    def get_orders_for_user(self, user_id: int) -> List[Order]:
        return [o for o in self._load() if o.user_id == user_id]

    def get_current_user_orders(self) -> List[Order]:
        current = self.session.user
        if current is None:
            return []
        return self.get_orders_for_user(current.id)

    def get_order_by_id(self, order_id: int) -> Optional[Order]:
        return next((o for o in self._load() if o.id == order_id), None)

    def get_addresses_for_user(self, user_id: int) -> List[Address]:
        # keyed by street only: same street with a different city collapses
        addresses: Dict[str, Address] = {}
        for order in self.get_orders_for_user(user_id):
            addresses[order.address.street] = order.address
        return list(addresses.values())

    def get_payment_methods_for_user(self, user_id: int) -> List[PaymentMethod]:
        methods: Dict[str, PaymentMethod] = {}
        for order in self.get_orders_for_user(user_id):
            methods[order.payment_method.details] = order.payment_method
        return list(methods.values())

    # Mutations

    def create_order(self, items: List[OrderItem], total: float, address: Address, payment_method: PaymentMethod) -> Order:
        current = self.session.user
        if current is None:
            raise Unauthenticated("Sign in to place an order")
        if total < 0:
            raise ValidationError("total", "Order total cannot be negative")
        order = self._append(current.id, items, total, address, payment_method)
        logger.info(f"Created order {order.id} for user {current.id}. Total: {total}")
        return order

    def checkout(self, cart: CartService, address: Address, payment_method: PaymentMethod) -> Order:
        cart_items = cart.items()
        if not cart_items:
            raise ValidationError("items", "Cart is empty")
        items = [
            OrderItem(product_id=i.product_id, name=i.name, price=i.price, quantity=i.quantity, image_url=i.image or None)
            for i in cart_items
        ]
        order = self.create_order(items, cart.total(), address, payment_method)
        cart.clear()
        return order

    def update_status(self, order_id: int, new_status: OrderStatus) -> bool:
        if new_status not in ORDER_STATUSES:
            raise ValidationError("status", f"Unknown order status: {new_status}")
        with self.store.locked():
            orders = self._load()
            order = next((o for o in orders if o.id == order_id), None)
            if order is None:
                return False
            if self.strict_transitions and new_status != order.status and new_status not in TRANSITIONS[order.status]:
                raise InvalidTransition(order.status, new_status)
            previous = order.status
            order.status = new_status
            self._save(orders)
        logger.info(f"Order {order_id} status updated from {previous} to {new_status}")
        return True

    def seed_sample_data(self, users: List[User], rng: Optional[random.Random] = None) -> int:
        """
        Populate 1-3 synthetic orders per user when no orders exist yet.

        Every third order is moved off Processing so dashboards show a mix of
        statuses. Returns the number of orders created.
        """
        if self._load():
            return 0
        rng = rng or random.Random()
        created: List[Order] = []
        for user in users:
            for _ in range(rng.randint(1, 3)):
                items = []
                for j in range(rng.randint(1, 3)):
                    items.append(OrderItem(
                        product_id=j + 1,
                        name=f"Product {j + 1}",
                        price=float(rng.randint(10, 109)),
                        quantity=rng.randint(1, 3),
                        image_url=f"https://picsum.photos/id/{(j + 1) * 10}/200/200",
                    ))
                total = sum(i.price * i.quantity for i in items)
                address = Address(street=f"{user.id} Main St", city="City", state="State", zip_code="12345", country="Country")
                payment = PaymentMethod(type="creditCard", details=f"**** **** **** {1000 + user.id}", name=f"{user.name}'s Card")
                created.append(self._append(user.id, items, total, address, payment))

        # every third order leaves Processing; both moves are legal in strict mode
        cycle = ("Shipped", "Cancelled")
        for index, order in enumerate(created):
            if index % 3 == 0:
                self.update_status(order.id, cycle[(index // 3) % len(cycle)])
        logger.info(f"Seeded {len(created)} sample orders for {len(users)} users")
        return len(created)
