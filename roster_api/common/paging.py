# roster_api/common/paging.py
from datetime import datetime

from flask import request

DEFAULT_PAGE = 1
DEFAULT_SIZE = 20
MAX_SIZE = 100

def page_limit():
    try:
        page = max(int(request.args.get("page", DEFAULT_PAGE)), 1)
    except Exception:
        page = DEFAULT_PAGE
    raw = request.args.get("size", request.args.get("limit", DEFAULT_SIZE))
    try:
        size = int(raw)
        size = max(1, min(size, MAX_SIZE))
    except Exception:
        size = DEFAULT_SIZE
    return page, size

def parse_date_any(s: str | None):
    """
    Accepts:
      - 'YYYY-MM-DD'  (canonical)
      - 'DD-MM-YYYY'  (legacy support)
    """
    if not s:
        return None
    for f in ("%Y-%m-%d", "%d-%m-%Y"):
        try:
            return datetime.strptime(s, f).date()
        except ValueError:
            pass
    return None
