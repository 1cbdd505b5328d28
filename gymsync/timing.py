import asyncio
import random
from typing import Optional

from gymsync.config import DelayRange


def jitter_ms(delay: DelayRange, rng: Optional[random.Random] = None) -> float:
    """Random duration within the range, in milliseconds."""
    rng = rng or random
    return delay.min + rng.random() * (delay.max - delay.min)


async def sleep_ms(milliseconds: float) -> None:
    await asyncio.sleep(milliseconds / 1000)
