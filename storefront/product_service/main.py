# storefront/product_service/main.py
import threading

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

app = FastAPI(title="Catalog Service (dev mock)")

_lock = threading.Lock()

PRODUCTS = {
    "1": {"id": "1", "title": "Clean Code", "price": 32.50, "image": "/img/book/1.jpg", "stock": 12, "promotion": 10},
    "2": {"id": "2", "title": "The Pragmatic Programmer", "price": 41.00, "image": "/img/book/2.jpg", "stock": 4},
    "42": {"id": "42", "title": "Hitchhiker's Guide", "price": 20.00, "image": "/img/book/42.jpg", "stock": 30},
    "99": {"id": "99", "title": "Out of Print", "price": 15.00, "image": None, "stock": 0},
}

BUNDLES = {
    "7": {"id": "7", "title": "Dune Saga (6 books)", "price": 89.90, "image": "/img/series/7.jpg", "stock": 3},
}


class StockChangeIn(BaseModel):
    quantity: int = Field(..., gt=0)


def _get(catalog: dict, item_id: str) -> dict:
    item = catalog.get(item_id)
    if not item:
        raise HTTPException(status_code=404, detail="Product not found")
    return item


def _decrement(catalog: dict, item_id: str, quantity: int) -> dict:
    with _lock:
        item = _get(catalog, item_id)
        if item["stock"] < quantity:
            raise HTTPException(status_code=409, detail="Insufficient stock")
        item["stock"] -= quantity
        return {"id": item_id, "stock": item["stock"]}


@app.get("/products/{product_id}")
def get_product(product_id: str):
    return _get(PRODUCTS, product_id)


@app.get("/bundles/{bundle_id}")
def get_bundle(bundle_id: str):
    return _get(BUNDLES, bundle_id)


@app.post("/products/{product_id}/stock/decrement")
def decrement_product(product_id: str, payload: StockChangeIn):
    return _decrement(PRODUCTS, product_id, payload.quantity)


@app.post("/bundles/{bundle_id}/stock/decrement")
def decrement_bundle(bundle_id: str, payload: StockChangeIn):
    return _decrement(BUNDLES, bundle_id, payload.quantity)


def _restock(catalog: dict, item_id: str, quantity: int) -> dict:
    with _lock:
        item = _get(catalog, item_id)
        item["stock"] += quantity
        return {"id": item_id, "stock": item["stock"]}


@app.post("/products/{product_id}/stock/restock")
def restock_product(product_id: str, payload: StockChangeIn):
    return _restock(PRODUCTS, product_id, payload.quantity)


@app.post("/bundles/{bundle_id}/stock/restock")
def restock_bundle(bundle_id: str, payload: StockChangeIn):
    return _restock(BUNDLES, bundle_id, payload.quantity)
