from decimal import Decimal

import pytest
import requests
from fastapi.testclient import TestClient

from storefront.domain.errors import CatalogLookupFailed, InsufficientStock
from storefront.domain.states import ProductType
from storefront.product_service import main as catalog_mock
from storefront.services.product_client import ProductClient


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self.payload = payload

    def json(self):
        return self.payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)


class FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    def _next(self, method, url, **kwargs):
        self.requests.append((method, url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def get(self, url, **kwargs):
        return self._next("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._next("POST", url, **kwargs)


def client_with(*responses):
    client = ProductClient(base_url="http://catalog/", timeout=1)
    client.session = FakeSession(responses)
    return client


def test_fetch_product_maps_catalog_payload():
    client = client_with(
        FakeResponse(payload={"id": "1", "title": "Clean Code", "price": 32.5, "image": "/img/1.jpg", "stock": 12, "promotion": 10})
    )

    product = client.fetch_product("1")

    assert product.title == "Clean Code"
    assert product.unit_price == Decimal("32.5")
    assert product.promotion_percentage == Decimal("10")
    assert product.in_stock
    assert client.session.requests[0][1] == "http://catalog/products/1"


def test_bundles_use_their_own_path():
    client = client_with(FakeResponse(payload={"id": "7", "title": "Dune Saga", "price": 89.9, "stock": 3}))

    product = client.fetch_product("7", ProductType.BUNDLE)

    assert product.type is ProductType.BUNDLE
    assert client.session.requests[0][1] == "http://catalog/bundles/7"


def test_missing_product_is_a_lookup_failure():
    client = client_with(FakeResponse(status_code=404))

    with pytest.raises(CatalogLookupFailed) as exc:
        client.fetch_product("404")

    assert exc.value.product_id == "404"
    assert len(client.session.requests) == 1


def test_connection_errors_are_retried():
    client = client_with(
        requests.ConnectionError("refused"),
        FakeResponse(payload={"id": "42", "title": "Hitchhiker's Guide", "price": 20, "stock": 30}),
    )

    assert client.fetch_product("42").unit_price == Decimal("20")
    assert len(client.session.requests) == 2


def test_bad_payload_is_a_lookup_failure():
    client = client_with(FakeResponse(payload={"id": "42", "price": "n/a"}))

    with pytest.raises(CatalogLookupFailed):
        client.fetch_product("42")


def test_decrement_stock():
    client = client_with(FakeResponse(payload={"id": "42", "stock": 28}))

    assert client.decrement_stock("42", 2) == 28
    method, url, kwargs = client.session.requests[0]
    assert (method, url, kwargs["json"]) == ("POST", "http://catalog/products/42/stock/decrement", {"quantity": 2})


def test_decrement_conflict_is_insufficient_stock():
    client = client_with(FakeResponse(status_code=409))

    with pytest.raises(InsufficientStock):
        client.decrement_stock("2", 5)


def test_decrement_is_not_retried():
    client = client_with(requests.ConnectionError("reset"))

    with pytest.raises(CatalogLookupFailed):
        client.decrement_stock("42", 1)
    assert len(client.session.requests) == 1


def test_restock_is_not_retried():
    client = client_with(FakeResponse(payload={"id": "7", "stock": 4}), requests.Timeout("slow"))

    assert client.restock("7", 1, ProductType.BUNDLE) == 4
    method, url, kwargs = client.session.requests[0]
    assert (method, url, kwargs["json"]) == ("POST", "http://catalog/bundles/7/stock/restock", {"quantity": 1})

    with pytest.raises(CatalogLookupFailed):
        client.restock("7", 1, ProductType.BUNDLE)
    assert len(client.session.requests) == 2


def test_dev_catalog_mock():
    mock = TestClient(catalog_mock.app)

    assert mock.get("/products/42").json()["price"] == 20.0
    assert mock.get("/products/nope").status_code == 404

    stock = mock.get("/bundles/7").json()["stock"]
    assert mock.post("/bundles/7/stock/decrement", json={"quantity": 1}).json()["stock"] == stock - 1
    assert mock.post("/bundles/7/stock/decrement", json={"quantity": 100}).status_code == 409
    assert mock.post("/bundles/7/stock/restock", json={"quantity": 1}).json()["stock"] == stock
