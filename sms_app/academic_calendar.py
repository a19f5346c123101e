import re
from datetime import date, datetime

TERMS = ("first", "second", "third")

FIRST_SESSION_YEAR = 2024
LAST_SESSION_YEAR = 2149

_SESSION_RE = re.compile(r"^(\d{4})/(\d{4})$")


def current_academic_session(today=None, cutover_month=9):
    """
    Academic session label for a given date, e.g. "2025/2026".

    A new session starts on the first day of ``cutover_month``; earlier
    months still belong to the session that started the previous year.
    """
    if today is None:
        today = date.today()
    if isinstance(today, datetime):
        today = today.date()
    if not 1 <= int(cutover_month) <= 12:
        raise ValueError("cutover_month must be between 1 and 12")
    start_year = today.year if today.month >= cutover_month else (today.year - 1)
    return f"{start_year}/{start_year + 1}"


def academic_session_options(first_year=FIRST_SESSION_YEAR, last_year=LAST_SESSION_YEAR):
    """All session labels from first_year to last_year, most recent first."""
    return [f"{year}/{year + 1}" for year in range(last_year, first_year - 1, -1)]


def is_valid_academic_session(label):
    if not isinstance(label, str):
        return False
    m = _SESSION_RE.match(label.strip())
    if not m:
        return False
    return int(m.group(2)) == int(m.group(1)) + 1


def normalize_term(value):
    """Lower-cased term name, or None if it is not one of TERMS."""
    if not isinstance(value, str):
        return None
    term = value.strip().lower()
    if term.endswith(" term"):
        term = term[: -len(" term")].strip()
    return term if term in TERMS else None
