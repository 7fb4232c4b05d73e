import logging
import re
import typing

from .roll import (
    UndefinedRollMappingError,
    UndefinedVariableError,
    Value,
    format_number,
)

logger = logging.getLogger(__name__)

RollMap = typing.Mapping[str, typing.Any]

_VARIABLE = re.compile(r"\$(\w+)")

# characters that only appear in notation, never in a roll map path
_NOTATION_CHARS = set("+-*/(),$")


def _looks_like_lookup(action: str) -> bool:
    if not action or any(c.isspace() or c in _NOTATION_CHARS for c in action):
        return False
    segments = action.split(".")
    if len(segments) > 1:
        return not all(segment.isdigit() for segment in segments)
    return not any(c.isdigit() for c in action)


def check_roll_map(action: str, roll_map: RollMap) -> str:
    """Resolve a dotted roll map path such as ``longsword.dmg.2h``.

    Returns the notation stored at the path, or ``action`` itself when it
    is ordinary notation. Raises UndefinedRollMappingError when ``action``
    can only have been meant as a path and the path does not resolve.
    """
    current: typing.Any = roll_map
    for segment in action.split("."):
        if not isinstance(current, typing.Mapping) or segment not in current:
            current = None
            break
        current = current[segment]

    if isinstance(current, str):
        logger.debug("roll map resolved %s to %s", action, current)
        return current

    if _looks_like_lookup(action):
        raise UndefinedRollMappingError(action)

    return action


def replace_variables(notation: str, variables: typing.Mapping[str, Value]) -> str:
    def replace(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name not in variables:
            raise UndefinedVariableError(name)
        return format_number(variables[name])

    return _VARIABLE.sub(replace, notation)


def resolve(
    action: str, roll_map: RollMap, variables: typing.Mapping[str, Value]
) -> str:
    return replace_variables(check_roll_map(action, roll_map), variables)
