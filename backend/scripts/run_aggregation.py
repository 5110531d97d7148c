#!/usr/bin/env python3
"""
Learning Aggregation Script
Rolls the action log into the pattern tables. Meant for cron.

Usage:
    python -m scripts.run_aggregation [scope_window_days] [pricing_window_days]

Example:
    python -m scripts.run_aggregation 7 30
"""
import json
import sys
import os

# Add the parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.orm import Session
from app.config import SCOPE_AGGREGATION_WINDOW_DAYS, PRICING_AGGREGATION_WINDOW_DAYS
from app.database import SessionLocal
from app.services.learning import run_learning_aggregation


def run(scope_window_days: int, pricing_window_days: int) -> bool:
    """Run every aggregation job. True when all of them succeeded."""
    db: Session = SessionLocal()
    try:
        summary = run_learning_aggregation(
            db,
            scope_window_days=scope_window_days,
            pricing_window_days=pricing_window_days,
        )
    finally:
        db.close()

    print(json.dumps(summary, indent=2, default=str))
    return all(job.get("status") == "success" for job in summary["jobs"].values())


if __name__ == "__main__":
    if len(sys.argv) > 3:
        print("Usage: python -m scripts.run_aggregation [scope_window_days] [pricing_window_days]")
        sys.exit(1)

    scope_days = int(sys.argv[1]) if len(sys.argv) > 1 else SCOPE_AGGREGATION_WINDOW_DAYS
    pricing_days = int(sys.argv[2]) if len(sys.argv) > 2 else PRICING_AGGREGATION_WINDOW_DAYS

    success = run(scope_days, pricing_days)
    sys.exit(0 if success else 1)
