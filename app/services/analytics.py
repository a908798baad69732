"""
Analytics Service - Admin dashboard numbers over issued tickets.
"""

from collections import Counter
from datetime import UTC, date, datetime, timedelta

from app.config import settings
from app.db.store import DocumentStore
from app.models.domain import DailyTicketStats, TicketAnalytics, TicketData
from app.services.tickets import TicketService


def compute_analytics(
    tickets: list[TicketData],
    today: date | None = None,
    recent_limit: int | None = None,
    days: int | None = None,
) -> TicketAnalytics:
    """
    Summarize tickets.

    scan_rate is a whole percentage (0 with no tickets). daily_stats covers
    the last `days` purchase days ending today, oldest first, including days
    with no tickets.
    """
    today = today or datetime.now(UTC).date()
    recent_limit = recent_limit or settings.analytics_recent_limit
    days = days or settings.analytics_days

    total = len(tickets)
    scanned = sum(1 for t in tickets if t.is_scanned)
    scan_rate = round(scanned / total * 100) if total else 0

    recent = sorted(tickets, key=lambda t: t.purchase_date, reverse=True)[:recent_limit]

    issued_per_day: Counter[date] = Counter()
    scanned_per_day: Counter[date] = Counter()
    for ticket in tickets:
        day = ticket.purchase_date.astimezone(UTC).date()
        issued_per_day[day] += 1
        if ticket.is_scanned:
            scanned_per_day[day] += 1

    daily_stats = []
    for offset in range(days - 1, -1, -1):
        day = today - timedelta(days=offset)
        daily_stats.append(
            DailyTicketStats(day=day, total=issued_per_day[day], scanned=scanned_per_day[day])
        )

    return TicketAnalytics(
        total_tickets=total,
        scanned_tickets=scanned,
        pending_tickets=total - scanned,
        scan_rate=scan_rate,
        recent_tickets=recent,
        daily_stats=daily_stats,
    )


class AnalyticsService:
    """Reads every ticket and summarizes it."""

    def __init__(self, store: DocumentStore) -> None:
        self.tickets = TicketService(store)

    async def get_analytics(self) -> TicketAnalytics:
        return compute_analytics(await self.tickets.list_all_tickets())
