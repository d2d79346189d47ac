"""SQLite database operations for storing balance readings."""

import sqlite3
from datetime import datetime
from decimal import Decimal
from typing import Optional

from .models import Reading


def init_db(db_path: str) -> sqlite3.Connection:
    """
    Initialize the database and create tables if they don't exist.

    Args:
        db_path: Path to the SQLite database file.

    Returns:
        A connection to the database.
    """
    conn = sqlite3.connect(db_path)
    conn.execute("""
        CREATE TABLE IF NOT EXISTS power_records (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            remaining_energy TEXT NOT NULL,
            remaining_money TEXT NOT NULL,
            meter_room_id TEXT NOT NULL,
            room_display_name TEXT NOT NULL,
            room_id TEXT NOT NULL,
            building_id TEXT NOT NULL,
            campus_id TEXT NOT NULL,
            room_number TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
    """)
    conn.commit()
    return conn


def save_reading(conn: sqlite3.Connection, reading: Reading) -> None:
    """
    Insert a reading. Decimals are stored as text to keep them exact.

    Args:
        conn: Database connection.
        reading: The reading to store.
    """
    conn.execute(
        """
        INSERT INTO power_records (
            remaining_energy, remaining_money, meter_room_id,
            room_display_name, room_id, building_id, campus_id, room_number,
            created_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            str(reading.remaining_energy),
            str(reading.remaining_money),
            reading.meter_room_id,
            reading.room_display_name,
            reading.room_id,
            reading.building_id,
            reading.campus_id,
            reading.room_number,
            reading.fetched_at.isoformat(),
        ),
    )
    conn.commit()


def get_latest_reading(conn: sqlite3.Connection) -> Optional[Reading]:
    """
    Get the most recently stored reading.

    Args:
        conn: Database connection.

    Returns:
        The reading, or None if the table is empty.
    """
    cursor = conn.execute("""
        SELECT remaining_money, remaining_energy, room_display_name, created_at,
               meter_room_id, room_id, building_id, campus_id, room_number
        FROM power_records ORDER BY id DESC LIMIT 1
    """)
    row = cursor.fetchone()
    if not row:
        return None
    return Reading(
        remaining_money=Decimal(row[0]),
        remaining_energy=Decimal(row[1]),
        room_display_name=row[2],
        fetched_at=datetime.fromisoformat(row[3]),
        meter_room_id=row[4],
        room_id=row[5],
        building_id=row[6],
        campus_id=row[7],
        room_number=row[8],
    )
