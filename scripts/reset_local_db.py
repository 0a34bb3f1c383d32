"""Utility script to reset the local document store.

Usage:
    python scripts/reset_local_db.py

Environment:
    Ensure DATABASE_URL (and other required settings) are available in
    the current shell before running this script.
"""

from __future__ import annotations

from office_workflow_bot.db import create_schema, drop_schema


def reset_database() -> None:
    drop_schema()
    create_schema()
    print("Local document store reset.")


if __name__ == "__main__":
    reset_database()
