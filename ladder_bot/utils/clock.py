"""
Wall-clock helpers.

All timestamps are stored as naive UTC datetimes so SQLite round-trips
compare cleanly with freshly generated values.
"""

from datetime import datetime, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as a naive UTC datetime"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def discord_timestamp(moment: Optional[datetime], style: str = 'R') -> str:
    """Render a stored naive UTC datetime as a Discord timestamp tag"""
    if moment is None:
        return 'never'
    epoch = int(moment.replace(tzinfo=timezone.utc).timestamp())
    return f'<t:{epoch}:{style}>'
