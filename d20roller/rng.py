"""Uniform random integers for die rolls.

``random_uint32`` draws from the operating system's entropy pool and
falls back to ``random`` if the platform has none. ``generate_roll``
maps those draws onto a die with rejection sampling, so no face is
favoured by the modulo reduction.
"""

import logging
import math
import os
import random
import typing

logger = logging.getLogger(__name__)

# size of the range random_uint32 draws from
MAX_RANGE = 2**32

# redraws before accepting a possibly biased sample
MAX_ITERATIONS = 100

RandomSource = typing.Callable[[], int]


def random_uint32() -> int:
    try:
        return int.from_bytes(os.urandom(4), "little")
    except NotImplementedError:
        return random.getrandbits(32)


def generate_roll(
    min_roll: int, max_roll: int, source: RandomSource = random_uint32
) -> int:
    low = math.ceil(min_roll)
    high = math.ceil(max_roll)
    span = high - low + 1
    if span < 1:
        raise ValueError("cannot roll between %s and %s" % (min_roll, max_roll))

    limit = (MAX_RANGE // span) * span
    sample = source()
    counter = 0
    while sample >= limit:
        if counter >= MAX_ITERATIONS:
            logger.warning(
                "gave up on an unbiased roll between %s and %s after %s draws",
                low,
                high,
                counter,
            )
            break
        sample = source()
        counter += 1

    return low + sample % span
