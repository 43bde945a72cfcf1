"""Build information of the distribution."""

from __future__ import annotations

import re
from datetime import datetime, timezone

__all__ = ["BUILD_TIME", "COMMIT_HASH", "TAG", "build_time_formatted"]

BUILD_TIME = "unknown"
COMMIT_HASH = "undefined"
TAG = ""

_INT_RE = re.compile(r"[+-]?[0-9]+")
_INT64_MIN, _INT64_MAX = -(2**63), 2**63 - 1


def build_time_formatted(build_time: str = BUILD_TIME) -> str:
    """Render a build time given in Unix seconds as RFC 3339 local time."""
    if build_time == "unknown":
        return build_time
    if _INT_RE.fullmatch(build_time) is None:
        return "invalid"
    seconds = int(build_time)
    if not _INT64_MIN <= seconds <= _INT64_MAX:
        return "invalid"
    try:
        moment = datetime.fromtimestamp(seconds, timezone.utc).astimezone()
    except (OverflowError, OSError, ValueError):
        return "invalid"
    offset = moment.utcoffset()
    if not offset:
        zone = "Z"
    else:
        minutes = int(offset.total_seconds()) // 60
        sign = "+" if minutes >= 0 else "-"
        hours, mins = divmod(abs(minutes), 60)
        zone = f"{sign}{hours:02d}:{mins:02d}"
    return moment.strftime("%Y-%m-%dT%H:%M:%S") + zone