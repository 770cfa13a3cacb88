"""
Earnings Calculation

DESIGN DECISION: Earnings are computed from the timesheet and the rate
history of the SAME store, through the DataLayer interface only.
Both adapters therefore produce identical figures for identical data,
which is what the dual layer compares.

Rates are loaded once per calculation into a RateBook instead of
looking up the effective rate for every timesheet day.
"""

from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from timesheetz.models.records import (
    CENTS,
    ClientRate,
    EarningsEntry,
    EarningsOverview,
    TimesheetEntry,
)

if TYPE_CHECKING:
    from timesheetz.storage.interface import DataLayer


ZERO = Decimal("0.00")


class RateBook:
    """
    All clients by name and their rates, newest effective date first.

    Unknown clients and days before the first rate price at 0.
    """

    def __init__(
        self,
        clients_by_name: dict[str, int],
        rates_by_client: dict[int, list[ClientRate]],
    ):
        self._clients_by_name = clients_by_name
        self._rates_by_client = {
            client_id: sorted(rates, key=lambda r: r.effective_date, reverse=True)
            for client_id, rates in rates_by_client.items()
        }

    @classmethod
    async def load(cls, store: "DataLayer") -> "RateBook":
        clients = await store.list_clients()
        rates_by_client: dict[int, list[ClientRate]] = {}
        for client in clients:
            rates_by_client[client.id] = await store.list_rates(client.id)
        return cls({c.name: c.id for c in clients}, rates_by_client)

    def rate_for(self, client_name: str, date: str) -> Decimal:
        client_id: Optional[int] = self._clients_by_name.get(client_name)
        if client_id is None:
            return ZERO
        for rate in self._rates_by_client.get(client_id, []):
            if rate.effective_date <= date:
                return rate.hourly_rate
        return ZERO


class EarningsCalculator:
    """
    Computes earnings overviews for one store.

    Only client hours are billable; days without client hours are skipped.
    """

    def __init__(self, store: "DataLayer"):
        self._store = store

    async def for_year(self, year: int) -> EarningsOverview:
        """One earnings entry per billable day of the year."""
        entries = await self._store.list_entries(year, 0)
        book = await RateBook.load(self._store)
        return self._per_day(year, 0, entries, book)

    async def for_month(self, year: int, month: int) -> EarningsOverview:
        entries = await self._store.list_entries(year, month)
        book = await RateBook.load(self._store)
        return self._per_day(year, month, entries, book)

    async def summary_for_year(self, year: int) -> EarningsOverview:
        """
        Earnings of the year grouped by (client, rate).

        A client whose rate changed during the year gets one
        line per rate. Entries carry no date.
        """
        entries = await self._store.list_entries(year, 0)
        book = await RateBook.load(self._store)

        aggregated: dict[tuple[str, Decimal], int] = {}
        for entry in entries:
            if entry.client_hours <= 0:
                continue
            key = (entry.client_name, book.rate_for(entry.client_name, entry.date))
            aggregated[key] = aggregated.get(key, 0) + entry.client_hours

        overview = EarningsOverview(year=year, month=0)
        for (client_name, rate), hours in sorted(aggregated.items()):
            self._add(overview, EarningsEntry(
                client_name=client_name,
                client_hours=hours,
                hourly_rate=rate,
                earnings=_earnings(hours, rate),
            ))
        return overview

    def _per_day(
        self,
        year: int,
        month: int,
        entries: list[TimesheetEntry],
        book: RateBook,
    ) -> EarningsOverview:
        overview = EarningsOverview(year=year, month=month)
        for entry in entries:
            if entry.client_hours <= 0:
                continue
            rate = book.rate_for(entry.client_name, entry.date)
            self._add(overview, EarningsEntry(
                date=entry.date,
                client_name=entry.client_name,
                client_hours=entry.client_hours,
                hourly_rate=rate,
                earnings=_earnings(entry.client_hours, rate),
            ))
        return overview

    @staticmethod
    def _add(overview: EarningsOverview, item: EarningsEntry) -> None:
        overview.entries.append(item)
        overview.total_hours += item.client_hours
        overview.total_earnings = (overview.total_earnings + item.earnings).quantize(CENTS)


def _earnings(hours: int, rate: Decimal) -> Decimal:
    return (rate * hours).quantize(CENTS)
