from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from ..logging import get_logger


class CommerceError(Exception):
    """A WooCommerce REST call failed (network, timeout, or HTTP error status)."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, body_preview: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body_preview = body_preview


@dataclass
class ProductPage:
    products: List[Dict[str, Any]] = field(default_factory=list)
    page: int = 1
    per_page: int = 20
    total_products: Optional[int] = None
    total_pages: Optional[int] = None


def _header_int(headers, name: str) -> Optional[int]:
    try:
        return int(headers.get(name))
    except (TypeError, ValueError):
        return None


class WooCommerceClient:
    """Thin client for the WooCommerce REST API (wc/v3) with session, timeouts, and logging.

    Only implements the subset we use: orders, product search and listing. Authentication uses
    the consumer key/secret as query parameters, which WooCommerce accepts over HTTPS.
    """

    def __init__(
        self,
        api_url: str,
        consumer_key: str,
        consumer_secret: str,
        *,
        timeout: int = 30,
        verify_tls: bool = True,
    ) -> None:
        self.base = api_url.rstrip("/")
        self.timeout = int(timeout)
        self.verify = bool(verify_tls)
        self.log = get_logger("woocommerce-client")
        self.s = requests.Session()
        self.s.headers.update({"Accept": "application/json"})
        self.s.params = {"consumer_key": consumer_key, "consumer_secret": consumer_secret}

    # ---------- helpers ----------
    def _url(self, path: str) -> str:
        return f"{self.base}/{path.lstrip('/')}"

    def _send(self, method: str, path: str, *, params: Optional[Dict[str, Any]] = None, payload: Any = None):
        url = self._url(path)
        self.log.debug(f"{method} {url} params={params}")
        try:
            r = self.s.request(method, url, params=params, json=payload, timeout=self.timeout, verify=self.verify)
        except requests.RequestException as e:
            self.log.error(f"{method} {path} failed: {e}")
            raise CommerceError(f"{method} {path} failed: {e}") from e

        if r.status_code >= 400:
            preview = r.text[:500] if r.text else ""
            self.log.error(f"{method} {path} returned HTTP {r.status_code}: {preview}")
            raise CommerceError(f"{method} {path} returned HTTP {r.status_code}", status_code=r.status_code, body_preview=preview)
        return r

    def _json(self, method: str, path: str, r: requests.Response) -> Any:
        try:
            return r.json()
        except ValueError as e:
            raise CommerceError(f"{method} {path} returned a non-JSON body", status_code=r.status_code) from e

    def _request(self, method: str, path: str, *, params: Optional[Dict[str, Any]] = None, payload: Any = None) -> Any:
        return self._json(method, path, self._send(method, path, params=params, payload=payload))

    # ---------- orders ----------
    def create_order(self) -> Dict[str, Any]:
        """Create an empty pending guest order."""
        self.log.info("POST orders (pending guest order)")
        return self._request("POST", "orders", payload={"status": "pending", "customer_id": 0, "set_paid": False})

    def update_order_line_items(self, order_id: int, line_items: List[Dict[str, int]]) -> Dict[str, Any]:
        self.log.info(f"PUT orders/{order_id} with {len(line_items)} line item(s)")
        return self._request("PUT", f"orders/{int(order_id)}", payload={"line_items": line_items})

    def get_order(self, order_id: int) -> Dict[str, Any]:
        return self._request("GET", f"orders/{int(order_id)}")

    def cancel_order(self, order_id: int) -> Dict[str, Any]:
        self.log.info(f"Cancelling order {order_id}")
        return self._request("PUT", f"orders/{int(order_id)}", payload={"status": "cancelled"})

    # ---------- products ----------
    def search_products(self, term: str, *, per_page: int = 5) -> List[Dict[str, Any]]:
        data = self._request("GET", "products", params={"search": term, "per_page": int(per_page), "status": "publish"})
        return data if isinstance(data, list) else []

    def list_products(
        self,
        *,
        query: str = "",
        category: str = "",
        page: int = 1,
        per_page: int = 20,
    ) -> ProductPage:
        """One page of published products plus the totals WooCommerce reports in headers."""
        params: Dict[str, Any] = {"page": int(page), "per_page": int(per_page), "status": "publish"}
        if query:
            params["search"] = query
        if category:
            params["category"] = category
        r = self._send("GET", "products", params=params)
        data = self._json("GET", "products", r)
        return ProductPage(
            products=data if isinstance(data, list) else [],
            page=int(page),
            per_page=int(per_page),
            total_products=_header_int(r.headers, "x-wp-total"),
            total_pages=_header_int(r.headers, "x-wp-totalpages"),
        )

    def close(self) -> None:
        self.s.close()
