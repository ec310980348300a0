from storefront.domain.errors import NotFound
from storefront.services.payment_gateway import ProviderGateway
from storefront.services.product_client import ProductClient

WEBHOOK_SECRET = "test-webhook-secret"


class FakeProviderGateway(ProviderGateway):
    """Real parsing and signing, canned provider answers instead of HTTP."""

    def __init__(self, method: str):
        super().__init__(method, "http://fake-provider", webhook_secret=WEBHOOK_SECRET)
        self.initiate_response = {"status": "pending", "redirect_url": "http://fake-provider/pay"}
        self.status_response = {"status": "pending"}
        self.error = None
        self.calls = []

    def _post(self, path, body):
        self.calls.append(("POST", path, body))
        if self.error:
            raise self.error
        return dict(self.initiate_response)

    def _get(self, path):
        self.calls.append(("GET", path, None))
        if self.error:
            raise self.error
        return dict(self.status_response)


class FakeProductClient(ProductClient):
    def __init__(self, prices: dict):
        super().__init__(base_url="http://fake-catalog")
        self.prices = prices

    def fetch_product(self, product_id: str) -> dict:
        if product_id not in self.prices:
            raise NotFound(f"Product {product_id} not found")
        return {"id": product_id, "price": self.prices[product_id]}


class RecordingConnection:
    def __init__(self, name: str = "conn"):
        self.name = name
        self.events = []

    def send(self, event):
        self.events.append(event)

    def __repr__(self):
        return f"RecordingConnection({self.name})"


class DeadConnection:
    def send(self, event):
        raise ConnectionError("socket already closed")
