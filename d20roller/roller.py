import logging
import typing

import pydantic
import yaml

from . import notation as notation_
from . import rng
from .roll import RollContext, RollResult, Value, execute, flatten
from .roll_parser import parse

logger = logging.getLogger(__name__)


class RollerConfigError(ValueError):
    pass


class RollerOptions(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(extra="forbid")

    default_min_roll: int = 1
    default_max_roll: int = 20
    default_roll: str = "1d20"
    default_count: int = 6

    @classmethod
    def on_load(
        cls, raw_data: typing.Optional[typing.Mapping[str, typing.Any]]
    ) -> "RollerOptions":
        try:
            return cls.model_validate(raw_data or {})
        except pydantic.ValidationError as e:
            raise RollerConfigError("invalid roller options:\n%s" % e) from e


class Roller:
    """Evaluates dice notation against a roll map and a variable table.

    The roll map, variables and options are fixed when the roller is
    built. Each call to ``roll`` gets its own breakdown, so one roller can
    be shared between threads.
    """

    def __init__(
        self,
        roll_map: typing.Optional[notation_.RollMap] = None,
        variables: typing.Optional[typing.Mapping[str, Value]] = None,
        options: typing.Optional[RollerOptions] = None,
        random_source: rng.RandomSource = rng.random_uint32,
    ) -> None:
        self.roll_map: typing.Dict[str, typing.Any] = dict(roll_map or {})
        self.variables: typing.Dict[str, Value] = dict(variables or {})
        self.options = options if options is not None else RollerOptions()
        self.random_source = random_source
        self.result: typing.Optional[RollResult] = None

    @classmethod
    def from_notation(cls, notation: str, **kwargs) -> "Roller":
        roller = cls(**kwargs)
        roller.result = roller.roll(notation)
        return roller

    @classmethod
    def with_config(
        cls, config: typing.Optional[typing.Mapping[str, typing.Any]], **kwargs
    ) -> "Roller":
        config = config or {}
        return cls(
            roll_map=config.get("map"),
            variables=config.get("variables"),
            options=RollerOptions.on_load(config.get("options")),
            **kwargs,
        )

    def generate_roll(
        self,
        min_roll: typing.Optional[int] = None,
        max_roll: typing.Optional[int] = None,
    ) -> int:
        return rng.generate_roll(
            self.options.default_min_roll if min_roll is None else min_roll,
            self.options.default_max_roll if max_roll is None else max_roll,
            self.random_source,
        )

    def resolve(self, notation: str) -> str:
        return notation_.resolve(notation, self.roll_map, self.variables)

    def roll(self, notation: typing.Optional[str] = None) -> RollResult:
        if notation is None:
            notation = self.options.default_roll
        logger.debug("rolling %s", notation)

        resolved = self.resolve(notation)
        if resolved != notation:
            logger.debug("%s resolved to %s", notation, resolved)

        context = RollContext(
            self.variables,
            self.generate_roll,
            min_roll=self.options.default_min_roll,
            default_count=self.options.default_count,
        )
        values = flatten(execute(parse(resolved), context))
        return RollResult(resolved, values, context.breakdown, context.fate_rolls)

    def __repr__(self) -> str:
        return "Roller(map=%r, variables=%r, options=%r)" % (
            self.roll_map,
            self.variables,
            self.options,
        )


def load_config(path: str, **kwargs) -> Roller:
    with open(path) as f:
        return Roller.with_config(yaml.safe_load(f), **kwargs)
