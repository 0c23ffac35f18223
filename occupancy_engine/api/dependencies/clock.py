# occupancy_engine/api/dependencies/clock.py
from datetime import datetime, timezone


async def get_now() -> datetime:
    """
    Current UTC instant for the request.

    Every "today" the engine computes derives from this value; tests
    override it to pin the clock.
    """
    return datetime.now(tz=timezone.utc)
