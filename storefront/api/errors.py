# storefront/api/errors.py
from contextlib import contextmanager

from fastapi import HTTPException

from storefront.domain.errors import GatewayError, InvalidInput, InvalidState, LockTimeout, NotFound
from storefront.services.product_client import CatalogUnavailable


@contextmanager
def http_errors():
    """Ledger errors -> HTTP responses, one mapping for every router."""
    try:
        yield
    except InvalidInput as e:
        raise HTTPException(status_code=422, detail={"message": e.message, "errors": e.errors})
    except InvalidState as e:
        raise HTTPException(status_code=409, detail=str(e))
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except GatewayError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except (LockTimeout, CatalogUnavailable) as e:
        raise HTTPException(status_code=503, detail=str(e))
