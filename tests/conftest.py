import itertools
import typing

import pytest

from d20roller.roller import Roller


def scripted_source(*faces: int) -> typing.Callable[[], int]:
    """A random source that makes every die come up ``faces`` in turn.

    ``generate_roll`` maps a draw ``n`` onto ``1 + n % sides``, so drawing
    ``face - 1`` rolls ``face`` on any die with at least that many sides.
    """
    samples = itertools.cycle([face - 1 for face in faces])
    return lambda: next(samples)


@pytest.fixture
def scripted_roller() -> typing.Callable[..., Roller]:
    def make(*faces: int, **kwargs) -> Roller:
        return Roller(random_source=scripted_source(*faces), **kwargs)

    return make
