"""
Shared utility functions for Contact Card services.
"""

from api.utils.datetime_utils import make_aware, parse_timestamp, utc_now
from api.utils.db_paths import get_db_path

__all__ = ["make_aware", "parse_timestamp", "utc_now", "get_db_path"]
