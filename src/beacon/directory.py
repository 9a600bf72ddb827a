"""User directory lookups against Supabase (PostgREST over httpx).

Every query is pinned to ``ispro = true``; callers may add NOT NULL filters.
"""

import os
from typing import Iterable, Protocol

import httpx

from beacon.otel import get_logger
from beacon.subscribers import Subscriber

log = get_logger()

TABLE = "user_preferences"

CONTENT_COLUMNS = (
    "user_email",
    "preferences",
    "ispro",
    "watchlist",
    "sector",
    "narrative",
    "last_job",
    "preference_update",
)

TELEGRAM_COLUMNS = (
    "user_email",
    "telegramid",
    "watchlist",
    "sector",
    "narrative",
    "tele_last_sent",
    "ispro",
    "last_job",
)


class DirectoryError(Exception):
    """The directory could not be queried (network, auth, or query error)."""


class Directory(Protocol):
    async def select(self, columns: Iterable[str], *, not_null: Iterable[str] = ()) -> list[Subscriber]:
        ...


def build_params(columns: Iterable[str], not_null: Iterable[str] = ()) -> dict[str, str]:
    """PostgREST query string for pro subscribers with the given columns."""
    params = {"select": ",".join(columns), "ispro": "eq.true"}
    for column in not_null:
        params[column] = "not.is.null"
    return params


def parse_rows(rows: list) -> list[Subscriber]:
    """Convert rows in order. A malformed row is logged and skipped."""
    subscribers = []
    for row in rows:
        try:
            subscribers.append(Subscriber.from_row(row))
        except (KeyError, TypeError, ValueError) as e:
            email = row.get("user_email", "<no user_email>") if isinstance(row, dict) else "<not an object>"
            log.error(f" -> Skipping malformed directory row for {email}: {type(e).__name__}: {e}")
    return subscribers


class SupabaseDirectory:
    """Directory backed by the Supabase REST endpoint."""

    def __init__(
        self,
        base_url: str,
        client: httpx.AsyncClient,
        key_var: str = "SUPABASE_SERVICE_KEY",
        table: str = TABLE,
    ):
        self.endpoint = f"{base_url.rstrip('/')}/rest/v1/{table}"
        self.client = client
        self.key_var = key_var

    def _headers(self) -> dict[str, str]:
        # Read on every call: the env watcher may have rotated the key
        key = os.environ.get(self.key_var)
        if not key:
            raise DirectoryError(f"{self.key_var} is not set")
        return {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Accept": "application/json",
        }

    async def select(self, columns: Iterable[str], *, not_null: Iterable[str] = ()) -> list[Subscriber]:
        params = build_params(columns, not_null)
        try:
            response = await self.client.get(self.endpoint, params=params, headers=self._headers())
            response.raise_for_status()
            rows = response.json()
        except httpx.HTTPStatusError as e:
            raise DirectoryError(
                f"Directory query failed with {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise DirectoryError(f"Directory query failed: {e}") from e

        if not isinstance(rows, list):
            raise DirectoryError(f"Unexpected directory response: {type(rows).__name__}")
        return parse_rows(rows)
