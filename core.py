"""
Wiring for the four store services.

One StoreCore owns one key-value store and one session context; every
service built here shares them.
"""
import random
from typing import Optional

from cart import CartService
from catalog import CatalogService, LocalCatalog, RemoteCatalog
from database import KeyValueStore, create_store
from identity import IdentityService, SessionContext
from orders import OrderService
from schemas import Address, Order, PaymentMethod


class StoreCore:
    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        remote: Optional[RemoteCatalog] = None,
        strict_writes: Optional[bool] = None,
        strict_transitions: Optional[bool] = None,
    ):
        self.store = store if store is not None else create_store()
        self.session = SessionContext(self.store)
        self.identity = IdentityService(self.store, self.session)
        self.cart = CartService(self.store)
        self.catalog = CatalogService(remote or RemoteCatalog(), LocalCatalog(self.store), self.session, strict_writes)
        self.orders = OrderService(self.store, self.session, strict_transitions)

    def checkout(self, address: Address, payment_method: PaymentMethod) -> Order:
        return self.orders.checkout(self.cart, address, payment_method)

    def seed_sample_orders(self, rng: Optional[random.Random] = None) -> int:
        return self.orders.seed_sample_data(self.identity.list_users(), rng)
