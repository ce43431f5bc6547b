from datetime import datetime, timezone
from typing import Callable

# A clock is any zero-arg callable returning an aware UTC datetime.
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
