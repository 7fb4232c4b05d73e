import enum
import math
import typing

from .roll import (
    DiceRollError,
    Expression,
    MalformedNotationError,
    Method,
    Roll,
    RollContext,
    UnknownFunctionError,
    Value,
    execute,
    flatten,
)


class FunctionName(enum.Enum):
    MAX = "max"
    MIN = "min"
    AVG = "avg"
    DROP = "drop"
    SUM = "sum"
    COUNT = "count"


def _require_values(fn: "FnOp", values: typing.List[Value]) -> typing.List[Value]:
    if len(values) == 0:
        raise DiceRollError("'%s' was given an empty set of rolls" % fn)
    return values


class FnOp(Method):
    function: FunctionName

    @classmethod
    def name(cls) -> str:
        return cls.function.value

    @classmethod
    def description(cls) -> str:
        return ""

    @classmethod
    def help(cls) -> str:
        return "No help text available for this function."


class Max(FnOp):
    function = FunctionName.MAX

    def op(self, *sets: typing.List[Value]) -> typing.List[Value]:
        if len(sets) == 1:
            return [max(_require_values(self, sets[0]))]
        return max(sets, key=sum)

    @classmethod
    def description(cls) -> str:
        return "highest roll, or the highest-summing set"

    @classmethod
    def help(cls) -> str:
        return """max(<rolls>, ...)

Arguments:
    rolls - One or more rolls or numbers.

Result:
    With one argument, returns its highest value.
    With several, returns the argument whose values
    add up to the most.

Examples:
    !roll max(2d20)
    !roll max(1d8 + 2, 2d4)
"""


class Min(FnOp):
    function = FunctionName.MIN

    def op(self, *sets: typing.List[Value]) -> typing.List[Value]:
        if len(sets) == 1:
            return [min(_require_values(self, sets[0]))]
        return min(sets, key=sum)

    @classmethod
    def description(cls) -> str:
        return "lowest roll, or the lowest-summing set"

    @classmethod
    def help(cls) -> str:
        return """min(<rolls>, ...)

Arguments:
    rolls - One or more rolls or numbers.

Result:
    With one argument, returns its lowest value.
    With several, returns the argument whose values
    add up to the least.

Examples:
    !roll min(2d20)
    !roll min(3d6, 3d6)
"""


class Avg(FnOp):
    function = FunctionName.AVG

    def op(self, *sets: typing.List[Value]) -> typing.List[Value]:
        return [
            math.floor(sum(_require_values(self, values)) / len(values))
            for values in sets
        ]

    @classmethod
    def description(cls) -> str:
        return "average of each set, rounded down"

    @classmethod
    def help(cls) -> str:
        return """avg(<rolls>, ...)

Arguments:
    rolls - One or more rolls or numbers.

Result:
    Returns the average of every argument,
    rounded down to a whole number.

Examples:
    !roll avg(4d6)
    !roll avg(2d8, 3d4)
"""


class Drop(FnOp):
    function = FunctionName.DROP

    def op(self, *sets: typing.List[Value]) -> typing.List[Value]:
        if len(sets) == 1:
            return sorted(sets[0], reverse=True)[:-1]
        lowest = min(range(len(sets)), key=lambda i: sum(sets[i]))
        return flatten(values for i, values in enumerate(sets) if i != lowest)

    @classmethod
    def description(cls) -> str:
        return "drop the lowest roll or set"

    @classmethod
    def help(cls) -> str:
        return """drop(<rolls>, ...)

Arguments:
    rolls - One or more rolls or numbers.

Result:
    With one argument, drops its single lowest value.
    With several, drops the argument whose values add
    up to the least and keeps the rest.

Examples:
    !roll drop(4d6)
    !roll drop(sum(drop(4d6)), sum(drop(4d6)), sum(drop(4d6)))
"""


class Sum(FnOp):
    function = FunctionName.SUM

    def op(self, *sets: typing.List[Value]) -> typing.List[Value]:
        return [sum(flatten(sets))]

    @classmethod
    def description(cls) -> str:
        return "add everything together"

    @classmethod
    def help(cls) -> str:
        return """sum(<rolls>, ...)

Arguments:
    rolls - One or more rolls or numbers.

Result:
    Adds every value of every argument into one number.

Examples:
    !roll sum(drop(4d6))
    !roll sum(2d6, 1d4)
"""


class Count(FnOp):
    function = FunctionName.COUNT

    def evaluate(self, context: RollContext) -> typing.List[Value]:
        sets = execute(self.parameters, context)
        if isinstance(self.parameters[0], Roll):
            return self.op([context.default_count], *sets)
        return self.op(*sets)

    def op(self, *sets: typing.List[Value]) -> typing.List[Value]:
        target, rolls = sets[0], sets[1:]
        if len(target) == 0:
            raise DiceRollError("'%s' has nothing to count" % self)
        return [sum(1 for value in values if value == target[0]) for values in rolls]

    @classmethod
    def description(cls) -> str:
        return "count rolls equal to a value"

    @classmethod
    def help(cls) -> str:
        return """count(<n>, <rolls>, ...)

Arguments:
    n - The value to look for. If left out, the
        server's default (usually 6) is used.
    rolls - One or more rolls.

Result:
    Returns, for each roll, how many dice came up n.

Examples:
    !roll count(6, 8d6)
    !roll count(8d6)
    !roll count(1, 2d20, 2d20)
"""


NAMES_TO_FUNCTIONS: typing.Dict[FunctionName, typing.Type[FnOp]] = {
    fn.function: fn for fn in (Max, Min, Avg, Drop, Sum, Count)
}


def resolve_function_call(name: str, parameters: typing.List[Expression]) -> FnOp:
    try:
        function = FunctionName(name.lower())
    except ValueError:
        raise UnknownFunctionError(name)
    if len(parameters) == 0:
        raise MalformedNotationError("%s() needs at least one argument" % name)
    return NAMES_TO_FUNCTIONS[function](parameters)
