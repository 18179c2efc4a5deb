# contestview/db/__init__.py

from .queries import (
    get_db,
    normalize_contest,
    normalize_lineup,
    fetch_contest,
    fetch_contests,
    fetch_contest_lineups,
    insert_contest_lineup,
    delete_contest_lineup,
)
