from datetime import datetime
from decimal import Decimal

from power_monitor.db import get_latest_reading, init_db, save_reading
from power_monitor.models import Reading


def test_save_and_read_back_latest(tmp_path):
    conn = init_db(str(tmp_path / "power.db"))
    first = Reading(Decimal("20.00"), Decimal("30.1"), "220407", fetched_at=datetime(2024, 3, 1, 9, 0))
    second = Reading(
        Decimal("19.55"),
        Decimal("29.8"),
        "220407",
        fetched_at=datetime(2024, 3, 1, 9, 1),
        room_number="407",
    )

    save_reading(conn, first)
    save_reading(conn, second)

    assert get_latest_reading(conn) == second
    count = conn.execute("SELECT COUNT(*) FROM power_records").fetchone()[0]
    assert count == 2
    conn.close()


def test_empty_table_has_no_latest(tmp_path):
    conn = init_db(str(tmp_path / "power.db"))
    assert get_latest_reading(conn) is None
    conn.close()


def test_init_is_idempotent(tmp_path):
    path = str(tmp_path / "power.db")
    init_db(path).close()
    conn = init_db(path)
    assert get_latest_reading(conn) is None
    conn.close()
