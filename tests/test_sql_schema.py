import re
from pathlib import Path

SQL = (Path(__file__).resolve().parent.parent / "sql" / "timetable_no_overlap.sql").read_text()

def test_constraint_skips_canceled_rows_by_status_name():
    constraint = SQL[SQL.index("add constraint timetable_no_overlap"):]
    assert "not is_canceled" in constraint
    assert "class_status_id" not in constraint

    assert "lower(s.status) in ('canceled', 'cancelled')" in SQL
    assert "before insert or update of class_status_id" in SQL

def test_status_ids_are_not_seeded():
    assert not re.search(r"insert\s+into\s+public\.class_status", SQL, re.IGNORECASE)
