"""
Content-Disposition for downloads. Header values must be latin-1, so a site or task name
with other characters goes into filename* (RFC 5987) and filename keeps an ASCII fallback.
"""
import re
from urllib.parse import quote

UNSAFE_FILENAME_PATTERN = re.compile(r"[^A-Za-z0-9._-]+")


def ascii_filename(filename: str) -> str:
    """Fallback name: runs of anything outside [A-Za-z0-9._-] collapse to one underscore."""
    cleaned = UNSAFE_FILENAME_PATTERN.sub("_", filename or "").strip("_")
    return cleaned or "download"


def build_content_disposition(filename: str, disposition: str = "attachment") -> str:
    """
    build_content_disposition("gantt_Kapolei Site_2026-03-01.pdf")
    -> 'attachment; filename="gantt_Kapolei_Site_2026-03-01.pdf"; filename*=UTF-8\'\'gantt_Kapolei%20Site_2026-03-01.pdf'
    """
    ascii_part = f'{disposition}; filename="{ascii_filename(filename)}"'
    encoded = quote(filename, safe="")
    return f"{ascii_part}; filename*=UTF-8''{encoded}"
