def test_repeated_add_merges_quantities(core):
    core.cart.add(7, "Lamp", 20.0, "lamp.jpg", 2)
    core.cart.add(7, "Lamp", 20.0, "lamp.jpg", 3)

    items = core.cart.items()
    assert len(items) == 1
    assert items[0].product_id == 7
    assert items[0].quantity == 5


def test_update_quantity_below_one_is_noop(core):
    core.cart.add(7, "Lamp", 20.0, "lamp.jpg", 5)

    core.cart.update_quantity(7, 0)
    assert core.cart.items()[0].quantity == 5

    core.cart.update_quantity(7, -3)
    assert core.cart.items()[0].quantity == 5

    core.cart.update_quantity(7, 2)
    assert core.cart.items()[0].quantity == 2


def test_items_keep_insertion_order(core):
    core.cart.add(3, "Chair", 40.0)
    core.cart.add(1, "Desk", 120.0)
    core.cart.add(3, "Chair", 40.0)

    assert [i.product_id for i in core.cart.items()] == [3, 1]


def test_remove_and_clear(core):
    core.cart.add(1, "Desk", 120.0)
    core.cart.add(2, "Chair", 40.0)

    core.cart.remove(1)
    core.cart.remove(99)
    assert [i.product_id for i in core.cart.items()] == [2]

    core.cart.clear()
    assert core.cart.items() == []


def test_total_and_count(core):
    assert core.cart.total() == 0
    assert core.cart.count() == 0

    core.cart.add(1, "Desk", 120.0, quantity=1)
    core.cart.add(2, "Chair", 40.5, quantity=2)

    assert core.cart.total() == 201.0
    assert core.cart.count() == 3


def test_cart_is_shared_across_users_on_device(core):
    core.identity.login("user@example.com", "password123")
    core.cart.add(1, "Desk", 120.0)
    core.identity.logout()
    core.identity.login("admin@example.com", "password123")

    assert [i.product_id for i in core.cart.items()] == [1]
