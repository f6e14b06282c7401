#!/usr/bin/env python3
"""Print an owner's dashboard, budgets and trend from a SQLite database."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Optional

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from finance_engine import FinanceEngine, config


def main(owner: str, db_path: Optional[str] = None, months: Optional[int] = None, as_json: bool = False) -> None:
    config.configure_logging()
    engine = FinanceEngine.sqlite(db_path)
    dashboard = engine.analytics.dashboard(owner)

    if as_json:
        print(json.dumps(dashboard.to_dict(), indent=2))
        return

    monthly = dashboard.monthly
    print(f"Owner: {owner}")
    print(f"This month: income {monthly.income:,.2f}, expenses {monthly.expenses:,.2f}, "
          f"balance {monthly.balance:,.2f}")
    print(f"Savings rate: {float(monthly.savings_rate):.1f}%  Health score: {dashboard.health_score}/100")

    print("\nTrend:")
    print(engine.analytics.trend_frame(owner, months).to_string(index=False))

    budgets = engine.budgets.list_budgets(owner)
    if budgets:
        print("\nBudgets:")
        for status in budgets:
            flag = "EXCEEDED" if status.is_exceeded else ("warning" if status.is_warning else "")
            print(f"  {status.budget.name:<24} {status.spent:>10,.2f} / {status.budget.amount:>10,.2f} "
                  f"({status.percentage}%) {flag}")

    notifications, unread = engine.notifications.list_notifications(owner)
    print(f"\nNotifications: {len(notifications)} shown, {unread} unread")
    for item in notifications:
        marker = " " if item.is_read else "*"
        print(f" {marker} [{item.type}] {item.title}")


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Show the finance dashboard for one owner.')
    parser.add_argument('owner', help='Owner (user) id')
    parser.add_argument('--db', default=None, help='SQLite database path (defaults to FINENGINE_DB_PATH)')
    parser.add_argument('--months', type=int, default=None, help='How many months of trend to show')
    parser.add_argument('--json', action='store_true', help='Print the dashboard as JSON')
    args = parser.parse_args()
    main(args.owner, db_path=args.db, months=args.months, as_json=args.json)
