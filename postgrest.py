from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests

from errors import NotFoundError, StoreError
from filters import And, Contains, Eq, Or

logger = logging.getLogger(__name__)

# Characters with a meaning inside PostgREST logical expressions.
_RESERVED = set(',.:()"\\ ')


class PostgrestStore:
    """Store client for a hosted PostgREST endpoint (``<base>/rest/v1/<table>``)."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        *,
        timeout: float = 15,
        session: Optional[requests.Session] = None,
    ):
        if not base_url:
            raise StoreError("A REST base URL is required for the hosted store.")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        if api_key:
            self._session.headers.update(
                {"apikey": api_key, "Authorization": f"Bearer {api_key}"}
            )

    def close(self) -> None:
        self._session.close()

    # ------------------------------------------------------------------ #
    # Filter encoding
    # ------------------------------------------------------------------ #
    @staticmethod
    def _value(value: Any) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        if value is None:
            return "null"
        return str(value)

    @classmethod
    def _quote(cls, text: str) -> str:
        if not any(char in _RESERVED for char in text):
            return text
        return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'

    @classmethod
    def _expression(cls, clause: Any) -> str:
        """Encode a clause for use inside an ``or=(...)``/``and=(...)`` list."""
        if isinstance(clause, Eq):
            op = "is" if clause.value is None else "eq"
            return f"{clause.column}.{op}.{cls._quote(cls._value(clause.value))}"
        if isinstance(clause, Contains):
            return f"{clause.column}.ilike.{cls._quote('*' + clause.needle + '*')}"
        if isinstance(clause, (Or, And)):
            name = "or" if isinstance(clause, Or) else "and"
            inner = ",".join(cls._expression(child) for child in clause.clauses)
            return f"{name}({inner})"
        raise StoreError(f"Unsupported filter: {clause!r}")

    @classmethod
    def filter_params(cls, clause: Any) -> List[Tuple[str, str]]:
        """Encode a clause as query-string pairs."""
        if clause is None:
            return []
        if isinstance(clause, Eq):
            op = "is" if clause.value is None else "eq"
            return [(clause.column, f"{op}.{cls._value(clause.value)}")]
        if isinstance(clause, Contains):
            return [(clause.column, f"ilike.*{clause.needle}*")]
        if isinstance(clause, And):
            # Top-level conjunctions are plain repeated parameters.
            params: List[Tuple[str, str]] = []
            for child in clause.clauses:
                params.extend(cls.filter_params(child))
            return params
        if isinstance(clause, Or):
            inner = ",".join(cls._expression(child) for child in clause.clauses)
            return [("or", f"({inner})")]
        raise StoreError(f"Unsupported filter: {clause!r}")

    # ------------------------------------------------------------------ #
    # Transport
    # ------------------------------------------------------------------ #
    def _request(
        self,
        method: str,
        table: str,
        params: List[Tuple[str, str]],
        *,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> List[Dict[str, Any]]:
        url = f"{self.base_url}/rest/v1/{table}"
        try:
            response = self._session.request(
                method,
                url,
                params=params,
                json=json,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as error:
            logger.warning("Store request %s %s failed: %s", method, url, error)
            raise StoreError(f"Unable to reach the store: {error}") from error

        if response.status_code >= 400:
            raise StoreError(_error_message(response))
        if not response.content:
            return []
        try:
            data = response.json()
        except ValueError as error:
            logger.warning("Store returned a non-JSON body for %s %s", method, url)
            raise StoreError("Store returned an invalid response") from error
        if isinstance(data, dict):
            return [data]
        return list(data or [])

    # ------------------------------------------------------------------ #
    # Query capability
    # ------------------------------------------------------------------ #
    def fetch_many(
        self,
        table: str,
        columns: Sequence[str],
        filter: Any = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        params = [("select", ",".join(columns))]
        params.extend(self.filter_params(filter))
        if limit is not None:
            params.append(("limit", str(int(limit))))
        return self._request("GET", table, params)

    def fetch_one(self, table: str, columns: Sequence[str], match_id: str) -> Dict[str, Any]:
        params = [("select", ",".join(columns)), ("id", f"eq.{match_id}"), ("limit", "1")]
        rows = self._request("GET", table, params)
        if not rows:
            raise NotFoundError(f"No row in {table} with id {match_id}")
        return rows[0]

    def update(self, table: str, patch: Dict[str, Any], match_id: str) -> Dict[str, Any]:
        rows = self._request(
            "PATCH",
            table,
            [("id", f"eq.{match_id}")],
            json=patch,
            headers={"Prefer": "return=representation"},
        )
        if not rows:
            raise NotFoundError(f"No row in {table} with id {match_id}")
        return rows[0]


def _error_message(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("error") or payload.get("hint")
        if message:
            return str(message)
    return f"Store responded with HTTP {response.status_code}"
