"""Subscriber records as returned by the user directory."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import pendulum


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a directory timestamp. Naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return pendulum.instance(value)
    return pendulum.parse(str(value))


@dataclass(frozen=True)
class Subscriber:
    """Immutable snapshot of one user_preferences row for the length of a cycle."""

    email: str
    is_pro: bool = False
    telegram_id: str | None = None
    preferences: Any = None
    watchlist: Any = None
    sector: Any = None
    narrative: Any = None
    last_job: datetime | None = None
    preference_update: datetime | None = None
    tele_last_sent: datetime | None = None
    row: dict = field(default_factory=dict, compare=False, repr=False)

    @property
    def id(self) -> str:
        return self.email

    @classmethod
    def from_row(cls, row: dict) -> "Subscriber":
        telegram_id = row.get("telegramid")
        return cls(
            email=row["user_email"],
            is_pro=bool(row.get("ispro", False)),
            telegram_id=str(telegram_id) if telegram_id is not None else None,
            preferences=row.get("preferences"),
            watchlist=row.get("watchlist"),
            sector=row.get("sector"),
            narrative=row.get("narrative"),
            last_job=parse_timestamp(row.get("last_job")),
            preference_update=parse_timestamp(row.get("preference_update")),
            tele_last_sent=parse_timestamp(row.get("tele_last_sent")),
            row=dict(row),
        )
