"""
Device cart.

There is one cart per store, shared by whoever is signed in on the device.
"""
import logging
from typing import List

from database import KeyValueStore, get_documents, save_documents
from schemas import CartItem

logger = logging.getLogger(__name__)

CART_KEY = "cart"


class CartService:
    def __init__(self, store: KeyValueStore):
        self.store = store

    def items(self) -> List[CartItem]:
        return [CartItem.model_validate(doc) for doc in get_documents(self.store, CART_KEY)]

    def _save(self, items: List[CartItem]) -> None:
        save_documents(self.store, CART_KEY, [i.model_dump() for i in items])

    def add(self, product_id: int, name: str, price: float, image: str = "", quantity: int = 1) -> None:
        with self.store.locked():
            items = self.items()
            for item in items:
                if item.product_id == product_id:
                    item.quantity += quantity
                    break
            else:
                items.append(CartItem(product_id=product_id, name=name, price=price, image=image, quantity=quantity))
            self._save(items)
        logger.info(f"Added {quantity} x product {product_id} to cart")

    def update_quantity(self, product_id: int, quantity: int) -> None:
        if quantity < 1:
            return
        with self.store.locked():
            items = self.items()
            for item in items:
                if item.product_id == product_id:
                    item.quantity = quantity
            self._save(items)

    def remove(self, product_id: int) -> None:
        with self.store.locked():
            self._save([i for i in self.items() if i.product_id != product_id])

    def clear(self) -> None:
        self.store.remove(CART_KEY)

    def total(self) -> float:
        return sum(i.price * i.quantity for i in self.items())

    def count(self) -> int:
        return sum(i.quantity for i in self.items())
