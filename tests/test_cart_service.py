import json
import random
from decimal import Decimal

import pytest

from conftest import FakeRedis, product
from storefront.domain.cart import CartLine, LineKey, ResolutionState
from storefront.domain.errors import CartLineNotFound, InvalidQuantity
from storefront.domain.states import ProductType
from storefront.repos.cart_repo import CartRepo
from storefront.services.cart_service import CartPricingEngine, CartRegistry
from storefront.services.pricing import PricingPolicy

BOOK = LineKey("42", ProductType.PRIMARY)


@pytest.fixture
def cart(cart_repo, product_cache):
    return CartPricingEngine(1, cart_repo, product_cache)


def test_single_line_below_threshold_pays_flat_shipping(cart):
    snap = cart.add_line("42", ProductType.PRIMARY, 1)

    assert snap.subtotal == Decimal("20.00")
    assert snap.discount == Decimal("0.00")
    assert snap.shipping_fee == Decimal("5.00")
    assert snap.total == Decimal("25.00")
    assert snap.selected_count == 1
    assert snap.total_count == 1
    assert snap.entries[0].state is ResolutionState.RESOLVED


def test_add_merges_into_existing_line(cart):
    cart.add_line("42")
    snap = cart.add_line("42", quantity=2)

    assert [(l.product_id, l.quantity) for l in cart.lines] == [("42", 3)]
    assert snap.subtotal == Decimal("60.00")
    assert snap.shipping_fee == Decimal("0.00")
    assert snap.total == Decimal("60.00")


def test_same_id_different_type_is_a_separate_line(cart):
    cart.add_line("42", ProductType.PRIMARY)
    snap = cart.add_line("42", ProductType.BUNDLE)

    assert snap.total_count == 2


def test_promotion_discount(cart):
    snap = cart.add_line("1", quantity=2)

    assert snap.subtotal == Decimal("65.00")
    assert snap.discount == Decimal("6.50")
    assert snap.shipping_fee == Decimal("0.00")
    assert snap.total == Decimal("58.50")


def test_empty_cart_still_pays_flat_shipping(cart):
    snap = cart.snapshot()

    assert snap.subtotal == Decimal("0.00")
    assert snap.discount == Decimal("0.00")
    assert snap.shipping_fee == Decimal("5.00")
    assert snap.total == Decimal("5.00")


def test_threshold_is_inclusive(cart_repo, product_cache):
    policy = PricingPolicy(free_shipping_threshold=Decimal("40.00"), flat_shipping_fee=Decimal("4.99"))
    engine = CartPricingEngine(1, cart_repo, product_cache, policy)

    assert engine.add_line("42").shipping_fee == Decimal("4.99")
    assert engine.add_line("42").shipping_fee == Decimal("0.00")


@pytest.mark.parametrize("quantity", [0, -1])
def test_invalid_quantity_is_rejected(cart, quantity):
    cart.add_line("42", quantity=2)

    with pytest.raises(InvalidQuantity):
        cart.set_quantity(BOOK, quantity)
    with pytest.raises(InvalidQuantity):
        cart.add_line("1", quantity=quantity)

    assert [(l.product_id, l.quantity) for l in cart.lines] == [("42", 2)]


def test_set_quantity_replaces(cart):
    cart.add_line("42", quantity=5)
    snap = cart.set_quantity(BOOK, 1)

    assert snap.entries[0].line.quantity == 1
    assert snap.subtotal == Decimal("20.00")


def test_unknown_line_raises(cart):
    with pytest.raises(CartLineNotFound):
        cart.set_quantity(BOOK, 2)
    with pytest.raises(CartLineNotFound):
        cart.remove_line(BOOK)


def test_deselected_lines_are_not_priced(cart):
    cart.add_line("42", quantity=3)
    snap = cart.set_selected(BOOK, False)

    assert snap.selected_count == 0
    assert snap.total_count == 1
    assert snap.subtotal == Decimal("0.00")
    assert snap.total == Decimal("5.00")

    snap = cart.select_all(True)
    assert snap.selected_count == 1


def test_out_of_stock_line_is_never_selected(cart):
    snap = cart.add_line("99")

    assert snap.entries[0].line.selected is True
    assert snap.entries[0].selected is False
    assert snap.subtotal == Decimal("0.00")


def test_failed_lookup_shows_as_failed_and_recovers(cart, catalog):
    snap = cart.add_line("555")

    assert snap.entries[0].state is ResolutionState.FAILED
    assert snap.entries[0].product is None
    assert snap.selected_count == 0

    catalog.products["555"] = product("555", "12.00")
    cart.reconcile()

    snap = cart.snapshot()
    assert snap.entries[0].state is ResolutionState.RESOLVED
    assert snap.subtotal == Decimal("12.00")


def test_snapshot_never_fetches(cart, catalog, product_cache):
    cart.add_line("42")
    calls = len(catalog.calls)
    product_cache.invalidate()

    snap = cart.snapshot()

    assert snap.entries[0].state is ResolutionState.UNRESOLVED
    assert snap.selected_count == 0
    assert len(catalog.calls) == calls


def test_remove_selected_keeps_unselected(cart):
    cart.add_line("42")
    cart.add_line("2")
    cart.set_selected(LineKey("2", ProductType.PRIMARY), False)

    snap = cart.remove_selected()

    assert [e.line.product_id for e in snap.entries] == ["2"]


def test_remove_and_clear(cart):
    cart.add_line("42")
    cart.add_line("1")

    snap = cart.remove_line(BOOK)
    assert [e.line.product_id for e in snap.entries] == ["1"]

    snap = cart.clear()
    assert snap.total_count == 0
    assert cart.lines == []


def test_lines_survive_a_reload(cart, cart_repo, product_cache, fake_redis):
    cart.add_line("42", quantity=2)
    cart.set_selected(BOOK, False)

    stored = json.loads(fake_redis.data["cart:1"])
    assert stored == [{"product_id": "42", "product_type": "PRIMARY", "quantity": 2, "selected": False}]

    reloaded = CartPricingEngine(1, cart_repo, product_cache)
    assert reloaded.lines == cart.lines


def test_corrupt_blob_starts_empty(cart_repo, product_cache, fake_redis):
    fake_redis.data["cart:1"] = "{not json"

    engine = CartPricingEngine(1, cart_repo, product_cache)

    assert engine.lines == []
    assert engine.persistent is True


def test_unavailable_store_degrades_to_memory(product_cache):
    engine = CartPricingEngine(1, CartRepo(client=FakeRedis(fail=True)), product_cache)

    snap = engine.add_line("42")

    assert engine.persistent is False
    assert snap.persistent is False
    assert snap.subtotal == Decimal("20.00")


def test_store_failure_after_start_keeps_the_mutation(cart, fake_redis):
    cart.add_line("42")
    fake_redis.fail = True

    snap = cart.add_line("1")

    assert snap.total_count == 2
    assert snap.persistent is False


def test_store_recovers_after_a_single_failure(cart, fake_redis):
    cart.add_line("42")
    fake_redis.fail = True
    assert cart.add_line("1").persistent is False

    fake_redis.fail = False
    snap = cart.add_line("2")

    assert snap.persistent is True
    stored = json.loads(fake_redis.data["cart:1"])
    assert [line["product_id"] for line in stored] == ["42", "1", "2"]


def test_cart_started_in_memory_keeps_stored_lines(cart_repo, product_cache, fake_redis):
    cart_repo.save(1, [CartLine(product_id="42", product_type=ProductType.PRIMARY, quantity=2)])
    fake_redis.fail = True
    engine = CartPricingEngine(1, cart_repo, product_cache)
    engine.add_line("1")
    assert engine.persistent is False

    fake_redis.fail = False
    snap = engine.sync()

    assert snap.persistent is True
    assert [(l.product_id, l.quantity) for l in engine.lines] == [("42", 2), ("1", 1)]
    assert [l.product_id for l in cart_repo.load(1)] == ["42", "1"]
    assert snap.subtotal == Decimal("72.50")


def test_registry_reuses_engine_per_user(cart_repo, product_cache):
    registry = CartRegistry(cart_repo, product_cache)

    assert registry.get(1) is registry.get(1)
    assert registry.get(1) is not registry.get(2)


def test_registries_sharing_a_store_see_each_others_changes(cart_repo, product_cache):
    first = CartRegistry(cart_repo, product_cache)
    second = CartRegistry(cart_repo, product_cache)

    first.get(1).add_line("42")
    second.get(1).add_line("2")

    snap = first.get(1).snapshot()
    assert [e.line.product_id for e in snap.entries] == ["42", "2"]
    assert snap.subtotal == Decimal("61.00")


def test_registry_evicts_least_recently_used(cart_repo, product_cache):
    registry = CartRegistry(cart_repo, product_cache, max_size=2)
    one = registry.get(1)
    one.add_line("42")
    two = registry.get(2)
    registry.get(1)
    registry.get(3)

    assert len(registry) == 2
    assert registry.get(1) is one
    assert registry.get(2) is not two
    assert len(registry) == 2


def test_total_is_always_recomputed(cart):
    rng = random.Random(7)
    ids = ["42", "1", "2", "99"]

    for _ in range(200):
        op = rng.choice(["add", "qty", "select", "select_all", "remove", "remove_selected", "clear"])
        key = LineKey(rng.choice(ids), ProductType.PRIMARY)
        present = any(l.key == key for l in cart.lines)

        if op == "add":
            snap = cart.add_line(key.product_id, quantity=rng.randint(1, 3))
        elif op == "qty" and present:
            snap = cart.set_quantity(key, rng.randint(1, 5))
        elif op == "select" and present:
            snap = cart.set_selected(key, rng.random() < 0.5)
        elif op == "select_all":
            snap = cart.select_all(rng.random() < 0.5)
        elif op == "remove" and present:
            snap = cart.remove_line(key)
        elif op == "remove_selected":
            snap = cart.remove_selected()
        elif op == "clear" and rng.random() < 0.1:
            snap = cart.clear()
        else:
            snap = cart.snapshot()

        expected_subtotal = sum(
            (e.product.unit_price * e.line.quantity for e in snap.entries if e.selected),
            Decimal("0.00"),
        )
        assert snap.subtotal == expected_subtotal
        assert snap.total == snap.subtotal - snap.discount + snap.shipping_fee
        assert Decimal("0.00") <= snap.discount <= snap.subtotal
        assert snap.selected_count == len(snap.selected) <= snap.total_count
        assert all(e.line.selected and e.product.in_stock for e in snap.selected)
