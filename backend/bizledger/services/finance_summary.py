"""Dashboard figures: period totals, monthly cash flow and expense categories."""

from __future__ import annotations

import calendar
from datetime import date
from decimal import Decimal

from sqlalchemy import extract, func
from sqlalchemy.orm import Session

from bizledger.models.ledger import Asset, Business, Expense, Income
from bizledger.schemas.finance import (
    CashFlowTrend,
    CategoryShare,
    ExpenseBreakdown,
    FinancialSummary,
    MonthlyCashFlow,
    SummaryPeriod,
)

DEFAULT_TREND_MONTHS = 6
MAX_TREND_MONTHS = 24
TOP_CATEGORIES = 10


def _quarter_start(day: date) -> date:
    return date(day.year, 3 * ((day.month - 1) // 3) + 1, 1)


def _month_end(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def _shift_months(first: date, months: int) -> date:
    index = first.year * 12 + (first.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def period_bounds(period: SummaryPeriod, today: date) -> tuple[date, date]:
    """Inclusive ``(start, end)`` calendar dates for *period* relative to *today*."""
    if period is SummaryPeriod.CURRENT_MONTH:
        start = today.replace(day=1)
        return start, _month_end(start.year, start.month)
    if period is SummaryPeriod.LAST_MONTH:
        start = _shift_months(today.replace(day=1), -1)
        return start, _month_end(start.year, start.month)
    if period is SummaryPeriod.CURRENT_QUARTER:
        start = _quarter_start(today)
        end = _shift_months(start, 2)
        return start, _month_end(end.year, end.month)
    if period is SummaryPeriod.LAST_QUARTER:
        start = _shift_months(_quarter_start(today), -3)
        end = _shift_months(start, 2)
        return start, _month_end(end.year, end.month)
    if period is SummaryPeriod.CURRENT_YEAR:
        return date(today.year, 1, 1), date(today.year, 12, 31)
    return date(today.year - 1, 1, 1), date(today.year - 1, 12, 31)


def _sum(db: Session, column, *criteria) -> Decimal:
    return Decimal(str(db.query(func.coalesce(func.sum(column), 0)).filter(*criteria).scalar()))


def build_summary(db: Session, business: Business, period: SummaryPeriod, today: date) -> FinancialSummary:
    """Totals for *business*.

    Income and expenses are limited to the period; assets are counted at
    their current value whatever the period.
    """
    start, end = period_bounds(period, today)

    total_income = _sum(
        db,
        Income.amount,
        Income.business_id == business.id,
        Income.date >= start,
        Income.date <= end,
    )
    total_expenses = _sum(
        db,
        Expense.amount,
        Expense.business_id == business.id,
        Expense.date >= start,
        Expense.date <= end,
    )
    total_assets = _sum(db, Asset.current_value, Asset.business_id == business.id)

    net_cash_flow = total_income - total_expenses
    return FinancialSummary(
        period=period,
        period_start=start,
        period_end=end,
        currency=business.currency,
        total_income=float(total_income),
        total_expenses=float(total_expenses),
        net_cash_flow=float(net_cash_flow),
        total_assets=float(total_assets),
        net_worth=float(total_assets + net_cash_flow),
    )


def trend_window(today: date, months: int) -> tuple[date, date]:
    """First day of the month ``months - 1`` back through the end of this month."""
    start = _shift_months(today.replace(day=1), -(months - 1))
    return start, _month_end(today.year, today.month)


def _monthly_totals(db: Session, model, business_id, start: date, end: date) -> dict[tuple[int, int], Decimal]:
    year = extract("year", model.date)
    month = extract("month", model.date)
    rows = (
        db.query(year, month, func.sum(model.amount))
        .filter(model.business_id == business_id, model.date >= start, model.date <= end)
        .group_by(year, month)
        .all()
    )
    return {(int(y), int(m)): Decimal(str(total or 0)) for y, m, total in rows}


def build_cash_flow_trend(
    db: Session,
    business: Business,
    today: date,
    months: int = DEFAULT_TREND_MONTHS,
) -> CashFlowTrend:
    """Income, expenses and net cash flow per calendar month, oldest first.

    Months without activity are included with zero totals.
    """
    start, end = trend_window(today, months)
    income = _monthly_totals(db, Income, business.id, start, end)
    expenses = _monthly_totals(db, Expense, business.id, start, end)

    items = []
    for offset in range(months):
        first = _shift_months(start, offset)
        key = (first.year, first.month)
        month_income = income.get(key, Decimal("0"))
        month_expenses = expenses.get(key, Decimal("0"))
        items.append(
            MonthlyCashFlow(
                month=f"{first.year:04d}-{first.month:02d}",
                income=float(month_income),
                expenses=float(month_expenses),
                net_cash_flow=float(month_income - month_expenses),
            )
        )
    return CashFlowTrend(start=start, end=end, months=months, currency=business.currency, items=items)


def build_expense_breakdown(
    db: Session,
    business: Business,
    period: SummaryPeriod,
    today: date,
) -> ExpenseBreakdown:
    """Largest expense categories in the period.

    Percentages are shares of all expenses in the period, so they may add up
    to less than 100 when more than ``TOP_CATEGORIES`` categories exist.
    """
    start, end = period_bounds(period, today)
    in_period = (
        Expense.business_id == business.id,
        Expense.date >= start,
        Expense.date <= end,
    )
    total = _sum(db, Expense.amount, *in_period)

    amount = func.sum(Expense.amount).label("amount")
    rows = (
        db.query(Expense.category, amount, func.count(Expense.id))
        .filter(*in_period)
        .group_by(Expense.category)
        .order_by(amount.desc(), Expense.category)
        .limit(TOP_CATEGORIES)
        .all()
    )

    items = []
    for category, category_total, count in rows:
        category_total = Decimal(str(category_total or 0))
        share = category_total / total * 100 if total else Decimal("0")
        items.append(
            CategoryShare(
                category=category,
                amount=float(category_total),
                count=int(count),
                percentage=float(round(share, 2)),
            )
        )
    return ExpenseBreakdown(
        period=period,
        period_start=start,
        period_end=end,
        currency=business.currency,
        total_expenses=float(total),
        items=items,
    )
