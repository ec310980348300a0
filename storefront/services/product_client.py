# storefront/services/product_client.py
from decimal import Decimal, InvalidOperation

import requests
from requests import RequestException

from storefront.domain.errors import NotFound
from storefront.utils.retry import http_retry
from storefront.utils.settings import PRODUCT_SERVICE_URL
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class CatalogUnavailable(Exception):
    pass


class ProductClient:
    """Catalog lookups, read once at checkout; the order keeps its own copy of the price."""

    def __init__(self, base_url: str | None = None, timeout: int = 2):
        self.base_url = (base_url or PRODUCT_SERVICE_URL).rstrip("/")
        self.timeout = timeout

    @http_retry()
    def _get(self, url: str) -> requests.Response:
        resp = requests.get(url, timeout=self.timeout)
        if resp.status_code == 404:
            #404 nie ponawiamy
            return resp
        resp.raise_for_status()
        return resp

    def fetch_product(self, product_id: str) -> dict:
        url = f"{self.base_url}/products/{product_id}"
        logger.info(f"ProductClient GET {url}")

        try:
            resp = self._get(url)
        except RequestException as e:
            raise CatalogUnavailable(f"Catalog unavailable: {e}")

        if resp.status_code == 404:
            raise NotFound(f"Product {product_id} not found")
        try:
            return resp.json()
        except ValueError:
            raise CatalogUnavailable(f"Catalog returned a non-JSON body for product {product_id}")

    def fetch_price(self, product_id: str) -> Decimal:
        pdata = self.fetch_product(product_id)
        try:
            return Decimal(str(pdata["price"]))
        except (KeyError, TypeError, InvalidOperation):
            #zepsuta odpowiedz katalogu, nie blad klienta
            logger.error(f"Catalog returned no usable price for product {product_id}: {pdata!r}")
            raise CatalogUnavailable(f"Catalog returned no usable price for product {product_id}")
