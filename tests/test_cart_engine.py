import random

import pytest

from services.cart_service.cart_engine import AddItemInput, CartEngine, cart_item_id_for


def boots(**overrides):
    data = dict(
        product_id="P1",
        name_en="Combat Boots",
        name_ka="საბრძოლო ჩექმები",
        unit_price=50,
        stock_at_add_time=10,
        min_order_quantity=1,
    )
    data.update(overrides)
    return AddItemInput(**data)


@pytest.fixture
def cart():
    return CartEngine(minimum_order_value=200)


def test_adding_same_product_twice_merges_into_one_line(cart):
    cart.add_item(boots(selected_size=""))
    cart.add_item(boots(selected_size=""))

    assert len(cart.lines) == 1
    assert cart.lines[0].quantity == 2
    assert cart.total_price == 100


def test_update_above_stock_is_clamped(cart):
    change = cart.add_item(boots(selected_size="M", stock_at_add_time=3))

    update = cart.update_quantity(change.cart_item_id, 10)

    assert cart.get_line(change.cart_item_id).quantity == 3
    assert update.clamped
    assert update.requested == 10
    assert update.applied == 3


def test_update_below_minimum_removes_line(cart):
    change = cart.add_item(boots(min_order_quantity=5))
    assert cart.get_line(change.cart_item_id).quantity == 5

    update = cart.update_quantity(change.cart_item_id, 3)

    assert update.removed
    assert cart.is_empty


def test_empty_cart_minimum_status(cart):
    assert cart.total_price == 0
    assert cart.is_global_minimum_met() is False
    assert cart.get_global_minimum_remaining() == 200


def test_minimum_met_exactly_at_threshold(cart):
    cart.add_item(boots(quantity=4))

    assert cart.total_price == 200
    assert cart.is_global_minimum_met()
    assert cart.get_global_minimum_remaining() == 0


def test_sizes_make_separate_lines(cart):
    cart.add_item(boots(selected_size="42"))
    cart.add_item(boots(selected_size="43"))

    assert [line.selected_size for line in cart.lines] == ["42", "43"]
    assert cart.total_items == 2


def test_blank_and_missing_size_share_identity():
    assert cart_item_id_for("P1", "") == cart_item_id_for("P1", None) == cart_item_id_for("P1", "  ")
    assert cart_item_id_for("P1", "M") != cart_item_id_for("P1M", "")


def test_new_line_starts_at_minimum_order_quantity(cart):
    change = cart.add_item(boots(min_order_quantity=3, quantity=1))

    assert change.applied == 3
    assert change.clamped


def test_add_above_stock_is_clamped(cart):
    change = cart.add_item(boots(stock_at_add_time=2, quantity=5))

    assert change.applied == 2
    assert cart.total_items == 2


def test_increment_on_existing_line_is_clamped_to_stock(cart):
    cart.add_item(boots(stock_at_add_time=3, quantity=3))
    change = cart.add_item(boots(stock_at_add_time=3))

    assert change.requested == 4
    assert change.applied == 3
    assert cart.total_items == 3


def test_readd_keeps_original_snapshot(cart):
    cart.add_item(boots(unit_price=50))
    cart.add_item(boots(unit_price=70))

    assert cart.lines[0].unit_price == 50
    assert cart.total_price == 100


def test_stock_below_minimum_is_not_added(cart):
    change = cart.add_item(boots(stock_at_add_time=2, min_order_quantity=5))

    assert change.applied == 0
    assert cart.is_empty


def test_unknown_ids_are_noops(cart):
    cart.add_item(boots())

    assert cart.update_quantity("missing", 4) is None
    assert cart.remove_item("missing") is False
    assert cart.total_items == 1


def test_remove_and_clear(cart):
    first = cart.add_item(boots(selected_size="42"))
    cart.add_item(boots(selected_size="43"))

    assert cart.remove_item(first.cart_item_id)
    assert len(cart.lines) == 1

    cart.clear_cart()
    assert cart.is_empty
    assert cart.total_items == 0


def test_totals_follow_line_changes(cart):
    change = cart.add_item(boots(quantity=2))
    cart.add_item(boots(product_id="P2", name_en="Knife", unit_price=30.5))

    cart.update_quantity(change.cart_item_id, 5)

    assert cart.total_items == 6
    assert cart.total_price == 280.5
    assert cart.get_global_minimum_remaining() == 0


def test_from_lines_merges_duplicates_and_reclamps():
    line = {
        "cart_item_id": "stale-id",
        "product_id": "P1",
        "name_en": "Combat Boots",
        "unit_price": 50,
        "quantity": 4,
        "selected_size": "",
        "stock_at_add_time": 6,
        "min_order_quantity": None,
    }

    engine = CartEngine.from_lines([line, dict(line)], minimum_order_value=200)

    assert len(engine.lines) == 1
    restored = engine.lines[0]
    assert restored.cart_item_id == cart_item_id_for("P1", None)
    assert restored.quantity == 6
    assert restored.min_order_quantity == 1


def test_snapshot_carries_checkout_fields(cart):
    cart.add_item(boots(selected_size="43", quantity=2))

    (row,) = cart.snapshot()

    assert row["product_id"] == "P1"
    assert row["quantity"] == 2
    assert row["selected_size"] == "43"
    assert row["unit_price"] == 50


def test_minimum_uses_unrounded_total(cart):
    cart.add_item(boots(unit_price=199.996, stock_at_add_time=1))

    assert cart.total_price == 200.0
    assert cart.is_global_minimum_met() is False
    assert cart.get_global_minimum_remaining() == 0.0


def test_minimum_met_despite_float_summing_error(cart):
    for product_id, price in (("A", 0.1), ("B", 0.2), ("C", 199.7)):
        cart.add_item(boots(product_id=product_id, unit_price=price))

    assert cart.is_global_minimum_met() is True


CATALOG = [
    dict(product_id="P1", unit_price=50, stock_at_add_time=10, min_order_quantity=1),
    dict(product_id="P2", unit_price=12.5, stock_at_add_time=4, min_order_quantity=2),
    dict(product_id="P3", unit_price=99.99, stock_at_add_time=1, min_order_quantity=1),
    dict(product_id="P4", unit_price=7, stock_at_add_time=2, min_order_quantity=3),
]


def random_step(rng, cart):
    action = rng.choice(["add", "add", "update", "remove"])
    if action == "add" or cart.is_empty:
        product = rng.choice(CATALOG)
        quantity = rng.choice([None, -3, 0, 1, 2, 5, 50])
        cart.add_item(boots(selected_size=rng.choice([None, "", "42", "43"]), quantity=quantity, **product))
    elif action == "update":
        line = rng.choice(cart.lines)
        cart.update_quantity(line.cart_item_id, rng.randint(-2, 15))
    else:
        cart.remove_item(rng.choice(cart.lines).cart_item_id)


@pytest.mark.parametrize("seed", range(20))
def test_invariants_hold_for_random_operation_sequences(seed):
    rng = random.Random(seed)
    cart = CartEngine(minimum_order_value=200)

    for _ in range(60):
        random_step(rng, cart)

        ids = [line.cart_item_id for line in cart.lines]
        assert len(ids) == len(set(ids))
        for line in cart.lines:
            assert line.min_order_quantity <= line.quantity <= line.stock_at_add_time
            assert line.cart_item_id == cart_item_id_for(line.product_id, line.selected_size)
        assert cart.total_items == sum(line.quantity for line in cart.lines)
        assert cart.total_price == round(sum(line.unit_price * line.quantity for line in cart.lines), 2)
        expected_met = sum(line.unit_price * line.quantity for line in cart.lines) >= 200 - 1e-9
        assert cart.is_global_minimum_met() is expected_met
