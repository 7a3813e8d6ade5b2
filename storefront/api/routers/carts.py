# storefront/api/routers/carts.py
from fastapi import APIRouter, Depends

from storefront.api.deps import get_cart_registry, http_error
from storefront.domain.cart import LineKey
from storefront.domain.errors import StorefrontError
from storefront.domain.schemas import CartOut, ItemIn, QuantityIn, SelectIn
from storefront.domain.states import ProductType
from storefront.services.cart_service import CartRegistry
from storefront.utils.settings import CATALOG_WAIT_SECONDS

router = APIRouter(prefix="/carts", tags=["carts"])


@router.get("/{user_id}", response_model=CartOut)
def get_cart(user_id: int, carts: CartRegistry = Depends(get_cart_registry)):
    # nierozwiazane pozycje wracaja jako RESOLVING, UI dociagnie je kolejnym GET
    return carts.get(user_id).wait_resolved(timeout=CATALOG_WAIT_SECONDS)


@router.post("/{user_id}/items", response_model=CartOut)
def add_item(user_id: int, payload: ItemIn, carts: CartRegistry = Depends(get_cart_registry)):
    try:
        return carts.get(user_id).add_line(payload.product_id, payload.product_type, payload.quantity)
    except StorefrontError as e:
        raise http_error(e)


@router.put("/{user_id}/items/{product_type}/{product_id}/quantity", response_model=CartOut)
def set_quantity(
    user_id: int,
    product_type: ProductType,
    product_id: str,
    payload: QuantityIn,
    carts: CartRegistry = Depends(get_cart_registry),
):
    try:
        return carts.get(user_id).set_quantity(LineKey(product_id, product_type), payload.quantity)
    except StorefrontError as e:
        raise http_error(e)


@router.put("/{user_id}/items/{product_type}/{product_id}/selected", response_model=CartOut)
def set_selected(
    user_id: int,
    product_type: ProductType,
    product_id: str,
    payload: SelectIn,
    carts: CartRegistry = Depends(get_cart_registry),
):
    try:
        return carts.get(user_id).set_selected(LineKey(product_id, product_type), payload.selected)
    except StorefrontError as e:
        raise http_error(e)


@router.put("/{user_id}/selection", response_model=CartOut)
def select_all(user_id: int, payload: SelectIn, carts: CartRegistry = Depends(get_cart_registry)):
    return carts.get(user_id).select_all(payload.selected)


@router.delete("/{user_id}/items/selected", response_model=CartOut)
def remove_selected(user_id: int, carts: CartRegistry = Depends(get_cart_registry)):
    return carts.get(user_id).remove_selected()


@router.delete("/{user_id}/items/{product_type}/{product_id}", response_model=CartOut)
def remove_item(
    user_id: int,
    product_type: ProductType,
    product_id: str,
    carts: CartRegistry = Depends(get_cart_registry),
):
    try:
        return carts.get(user_id).remove_line(LineKey(product_id, product_type))
    except StorefrontError as e:
        raise http_error(e)


@router.delete("/{user_id}", response_model=CartOut)
def clear_cart(user_id: int, carts: CartRegistry = Depends(get_cart_registry)):
    return carts.get(user_id).clear()
