"""
api_client.py - REST client for the vocabulary backend

Thin wrapper around the backend's card/category endpoints. Every call is
blocking; run it from a worker thread when called from the UI.

Errors:
- ApiError for any failed request (status_code=None for network errors)
- StaleReferenceError (404) when the target id no longer exists
"""

import json
import logging
from typing import Any, Dict, List, Optional

import requests

from config import DEFAULT_CONFIG

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """A remote call failed"""

    def __init__(self, message: str, status_code: Optional[int] = None, detail: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail

    def user_message(self, fallback: str) -> str:
        """Text suitable for an error banner"""
        return self.detail or fallback


class StaleReferenceError(ApiError):
    """The id no longer exists server-side (already deleted)"""


def _error_detail(response) -> str:
    try:
        data = response.json()
    except (ValueError, json.JSONDecodeError):
        return ""
    if isinstance(data, dict):
        detail = data.get("detail")
        if isinstance(detail, str):
            return detail
        if detail is not None:
            return json.dumps(detail)
    return ""


class VocabApiClient:
    """Client for the /cards and /categories endpoints"""

    def __init__(self, base_url: str = DEFAULT_CONFIG["api_base_url"],
                 token: str = "",
                 timeout: int = DEFAULT_CONFIG["request_timeout"],
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        if token:
            self.set_auth_token(token)

    @classmethod
    def from_config(cls, cfg: Dict) -> "VocabApiClient":
        return cls(
            base_url=cfg.get("api_base_url", DEFAULT_CONFIG["api_base_url"]),
            token=cfg.get("auth_token", ""),
            timeout=cfg.get("request_timeout", DEFAULT_CONFIG["request_timeout"]),
        )

    def set_auth_token(self, token: str):
        self.session.headers["Authorization"] = f"Bearer {token}"

    # ========== TRANSPORT ==========

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout:
            logger.error("%s %s timed out", method, path)
            raise ApiError("Request timed out")
        except requests.exceptions.RequestException as e:
            logger.error("%s %s failed: %s", method, path, e)
            raise ApiError(f"Network error: {e}")

        if response.status_code == 404:
            raise StaleReferenceError(f"{method} {path}: not found", 404, _error_detail(response))
        if response.status_code >= 400:
            detail = _error_detail(response)
            logger.warning("%s %s -> %s %s", method, path, response.status_code, detail)
            raise ApiError(f"{method} {path} failed with status {response.status_code}",
                           response.status_code, detail)

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            raise ApiError("Invalid response data received", response.status_code)

    # ========== CARDS ==========

    def get_cards_hierarchy(self, category_id: Optional[int] = None) -> List[dict]:
        params = {"category_id": category_id} if category_id else {}
        return self._request("GET", "/cards/hierarchy", params=params) or []

    def create_card(self, name: str, is_folder: bool, category_id: Optional[int],
                    parent_id: Optional[int] = None) -> dict:
        payload = {
            "name": name,
            "parent_id": parent_id,
            "is_folder": is_folder,
            "category_id": category_id,
        }
        return self._request("POST", "/cards/", json=payload)

    def update_card(self, card_id: int, fields: Dict[str, Any]) -> dict:
        return self._request("PATCH", f"/cards/{card_id}", json=fields)

    def move_card(self, card_id: int, parent_id: Optional[int] = None,
                  category_id: Optional[int] = None):
        payload: Dict[str, Any] = {"parent_id": parent_id}
        if category_id is not None:
            payload["category_id"] = category_id
        self._request("PATCH", f"/cards/{card_id}/move", json=payload)

    def delete_card(self, card_id: int):
        self._request("DELETE", f"/cards/{card_id}")

    def delete_card_bulk(self, card_id: int):
        self._request("DELETE", f"/cards/{card_id}/bulk")

    # ========== CATEGORIES ==========

    def get_categories_with_cards(self) -> List[dict]:
        return self._request("GET", "/categories/with-cards") or []

    def create_category(self, name: str) -> dict:
        return self._request("POST", "/categories/", json={"name": name})

    def update_category(self, category_id: int, name: str) -> dict:
        return self._request("PATCH", f"/categories/{category_id}", json={"name": name})

    def delete_category_bulk(self, category_id: int):
        self._request("DELETE", f"/categories/{category_id}/bulk")
