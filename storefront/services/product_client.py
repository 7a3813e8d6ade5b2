# storefront/services/product_client.py
from decimal import Decimal, InvalidOperation

import requests
from requests import RequestException

from storefront.domain.cart import ResolvedProduct
from storefront.domain.errors import CatalogLookupFailed, InsufficientStock
from storefront.domain.states import ProductType
from storefront.utils.retry import http_retry
from storefront.utils.settings import PRODUCT_SERVICE_URL, CATALOG_TIMEOUT_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

_PATHS = {
    ProductType.PRIMARY: "products",
    ProductType.BUNDLE: "bundles",
}


class ProductClient:
    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or PRODUCT_SERVICE_URL).rstrip("/")
        self.timeout = timeout or CATALOG_TIMEOUT_SECONDS
        self.session = requests.Session()

    @http_retry()
    def _get(self, url: str) -> dict:
        logger.info(f"ProductClient GET {url}")
        resp = self.session.get(url, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def fetch_product(self, product_id: str, product_type: ProductType = ProductType.PRIMARY) -> ResolvedProduct:
        url = f"{self.base_url}/{_PATHS[ProductType(product_type)]}/{product_id}"
        try:
            data = self._get(url)
        except RequestException as e:
            raise CatalogLookupFailed(product_id, ProductType(product_type).value, str(e)) from e

        try:
            return self._to_product(product_id, product_type, data)
        except (KeyError, TypeError, ValueError, InvalidOperation) as e:
            raise CatalogLookupFailed(product_id, ProductType(product_type).value, f"bad payload: {e}") from e

    @staticmethod
    def _to_product(product_id: str, product_type: ProductType, data: dict) -> ResolvedProduct:
        promotion = data.get("promotion")
        return ResolvedProduct(
            id=str(data.get("id", product_id)),
            type=product_type,
            title=data["title"],
            unit_price=Decimal(str(data["price"])),
            image_ref=data.get("image"),
            stock_quantity=int(data.get("stock", 0)),
            promotion_percentage=Decimal(str(promotion)) if promotion is not None else None,
        )

    def _post(self, url: str, payload: dict) -> requests.Response:
        logger.info(f"ProductClient POST {url}")
        return self.session.post(url, json=payload, timeout=self.timeout)

    def _change_stock(self, product_id: str, quantity: int, product_type: ProductType, action: str) -> int:
        product_type = ProductType(product_type)
        url = f"{self.base_url}/{_PATHS[product_type]}/{product_id}/stock/{action}"
        try:
            resp = self._post(url, {"quantity": quantity})
        except RequestException as e:
            raise CatalogLookupFailed(product_id, product_type.value, str(e)) from e

        if resp.status_code == 409:
            raise InsufficientStock(product_id, quantity)
        try:
            resp.raise_for_status()
        except RequestException as e:
            raise CatalogLookupFailed(product_id, product_type.value, str(e)) from e
        return int(resp.json()["stock"])

    def decrement_stock(
        self, product_id: str, quantity: int, product_type: ProductType = ProductType.PRIMARY
    ) -> int:
        """Zdejmuje towar ze stanu, zwraca nowy stan magazynowy."""
        return self._change_stock(product_id, quantity, product_type, "decrement")

    def restock(self, product_id: str, quantity: int, product_type: ProductType = ProductType.PRIMARY) -> int:
        """Oddaje towar na stan (kompensacja nieudanej wysylki)."""
        return self._change_stock(product_id, quantity, product_type, "restock")
