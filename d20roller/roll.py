import decimal
import typing


class ImageResult:
    def __init__(self, data: bytes) -> None:
        self.data = data


class DiceRollError(ValueError):
    pass


class UndefinedVariableError(DiceRollError):
    def __init__(self, name: str) -> None:
        super().__init__('Variable "%s" is not defined' % name)
        self.name = name


class UndefinedRollMappingError(DiceRollError):
    def __init__(self, path: str) -> None:
        super().__init__('Roll mapping "%s" is not defined' % path)
        self.path = path


class InvalidDieSizeError(DiceRollError):
    def __init__(self, token: str, die_size: str) -> None:
        super().__init__(
            "cannot roll %s: '%s' is not a valid die size" % (token, die_size)
        )
        self.token = token
        self.die_size = die_size


class UnknownFunctionError(DiceRollError):
    def __init__(self, name: str) -> None:
        super().__init__("unknown function %s" % name)
        self.name = name


class MalformedNotationError(DiceRollError):
    pass


class TooManyDiceError(DiceRollError):
    def __init__(self, token: str, limit: int) -> None:
        super().__init__("cannot roll %s: at most %s dice per roll" % (token, limit))
        self.token = token
        self.limit = limit


FATE_DIE_SIZE = "F"
FATE_DIE_SIDES = 6

# physical face -> (value, symbol)
FATE_FACES: typing.Dict[int, typing.Tuple[int, str]] = {
    1: (-1, "-"),
    2: (-1, "-"),
    3: (0, "□"),
    4: (0, "□"),
    5: (1, "+"),
    6: (1, "+"),
}

Value = typing.Union[int, float]
Trace = typing.List[typing.Dict[str, Value]]


def format_number(value: Value) -> str:
    """Print a value as a word the lexer reads back as the same number."""
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        # never scientific notation: "1e-05" is not a number word
        return format(decimal.Decimal(repr(value)), "f")
    return str(value)


class RollContext:
    """State owned by a single evaluation, including its breakdown.

    A context is created per roll and is never shared between calls.
    """

    def __init__(
        self,
        variables: typing.Mapping[str, Value],
        generate_roll: typing.Callable[[int, int], int],
        min_roll: int = 1,
        default_count: int = 6,
    ) -> None:
        self.variables = variables
        self.generate_roll = generate_roll
        self.min_roll = min_roll
        self.default_count = default_count
        self.breakdown: Trace = []
        self.fate_rolls: typing.List[str] = []

    def record(self, label: str, value: Value) -> None:
        self.breakdown.append({"%s: %s" % (label, len(self.breakdown)): value})


class Expression:
    def evaluate(self, context: RollContext) -> typing.List[Value]:
        raise NotImplementedError


class Other(Expression):
    """A word the lexer could not classify."""

    def __init__(self, value: str) -> None:
        self.value = value

    def evaluate(self, context: RollContext) -> typing.List[Value]:
        raise MalformedNotationError("cannot evaluate '%s'" % self.value)

    def __repr__(self) -> str:
        return self.value


class Number(Expression):
    def __init__(self, value: Value) -> None:
        self.value = value

    def evaluate(self, context: RollContext) -> typing.List[Value]:
        return [self.value]

    def __repr__(self) -> str:
        return format_number(self.value)


class Variable(Expression):
    def __init__(self, name: str) -> None:
        self.name = name

    def evaluate(self, context: RollContext) -> typing.List[Value]:
        if self.name not in context.variables:
            raise UndefinedVariableError(self.name)
        return [context.variables[self.name]]

    def __repr__(self) -> str:
        return "$%s" % self.name


class Roll(Expression):
    def __init__(
        self, dice_count: int, die_size: typing.Union[int, str]
    ) -> None:
        self.dice_count = dice_count
        self.die_size = die_size

    @property
    def fate(self) -> bool:
        return self.die_size == FATE_DIE_SIZE

    @property
    def sides(self) -> int:
        if self.fate:
            return FATE_DIE_SIDES
        return typing.cast(int, self.die_size)

    def evaluate(self, context: RollContext) -> typing.List[Value]:
        results: typing.List[Value] = []
        for _ in range(self.dice_count):
            face = context.generate_roll(
                1 if self.fate else context.min_roll, self.sides
            )
            if self.fate:
                value, symbol = FATE_FACES[face]
                context.fate_rolls.append(symbol)
            else:
                value = face
            context.record(repr(self), value)
            results.append(value)
        return results

    def __repr__(self) -> str:
        return "%sd%s" % (self.dice_count, self.die_size)


class Operator(Expression):
    symbol = ""

    def __init__(
        self,
        operands: typing.Optional[typing.Tuple[Expression, Expression]] = None,
    ) -> None:
        self.operands = operands

    def op(self, lhs: Value, rhs: Value) -> Value:
        raise NotImplementedError

    def evaluate(self, context: RollContext) -> typing.List[Value]:
        if self.operands is None:
            raise MalformedNotationError(
                "operator '%s' is missing an operand" % self.symbol
            )
        lhs, rhs = (sum(operand.evaluate(context)) for operand in self.operands)
        return [self.op(lhs, rhs)]

    def __repr__(self) -> str:
        if self.operands is None:
            return self.symbol
        return "%s %s %s" % (self.operands[0], self.symbol, self.operands[1])


class Add(Operator):
    symbol = "+"

    def op(self, lhs: Value, rhs: Value) -> Value:
        return lhs + rhs


class Sub(Operator):
    symbol = "-"

    def op(self, lhs: Value, rhs: Value) -> Value:
        return lhs - rhs


class Mul(Operator):
    symbol = "*"

    def op(self, lhs: Value, rhs: Value) -> Value:
        return lhs * rhs


class Div(Operator):
    symbol = "/"

    def op(self, lhs: Value, rhs: Value) -> Value:
        if rhs == 0:
            raise DiceRollError("division by zero in '%s'" % self)
        return lhs / rhs


class Method(Expression):
    @classmethod
    def name(cls) -> str:
        raise NotImplementedError

    def __init__(self, parameters: typing.List[Expression]) -> None:
        self.parameters = parameters

    def op(self, *sets: typing.List[Value]) -> typing.List[Value]:
        raise NotImplementedError

    def evaluate(self, context: RollContext) -> typing.List[Value]:
        return list(self.op(*execute(self.parameters, context)))

    def __repr__(self) -> str:
        return "%s(%s)" % (self.name(), ", ".join(str(p) for p in self.parameters))


def execute(
    nodes: typing.Sequence[Expression], context: RollContext
) -> typing.List[typing.List[Value]]:
    return [node.evaluate(context) for node in nodes]


def flatten(sets: typing.Iterable[typing.Iterable[Value]]) -> typing.List[Value]:
    return [value for values in sets for value in values]


class RollResult:
    def __init__(
        self,
        notation: str,
        rolls: typing.List[Value],
        breakdown: Trace,
        fate_rolls: typing.Optional[typing.List[str]] = None,
    ) -> None:
        self.notation = notation
        self.rolls = rolls
        self.total: Value = sum(rolls)
        self.breakdown = breakdown
        self.original_rolls: typing.List[Value] = [
            value for entry in breakdown for value in entry.values()
        ]
        self.fate_rolls = fate_rolls if fate_rolls is not None else []

    def __repr__(self) -> str:
        return "%s = %s" % (self.notation, format_number(self.total))
