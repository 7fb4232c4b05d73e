"""Dice notation roller: ``drop(4d6) + $strMod``, ``max(2d20)``, ``4dF``."""

from .roll import (
    DiceRollError,
    InvalidDieSizeError,
    MalformedNotationError,
    RollResult,
    TooManyDiceError,
    UndefinedRollMappingError,
    UndefinedVariableError,
    UnknownFunctionError,
)
from .roller import Roller, RollerConfigError, RollerOptions, load_config
