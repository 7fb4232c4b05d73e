import functools
import logging
import os
import typing

import lark

from . import functions
from . import roll

logger = logging.getLogger(__name__)

OPERATORS: typing.Dict[str, typing.Type[roll.Operator]] = {
    "+": roll.Add,
    "-": roll.Sub,
    "*": roll.Mul,
    "/": roll.Div,
}

# per roll word; a running evaluation cannot be interrupted
MAX_DICE = 10000


def parse_number(word: str) -> typing.Optional[roll.Value]:
    digits = word[1:] if word[:1] in ("+", "-") else word
    if digits.isdecimal():
        return int(word)
    whole, dot, fraction = digits.partition(".")
    if dot and whole.isdecimal() and fraction.isdecimal():
        return float(word)
    return None


def _parse_roll(word: str) -> typing.Optional[roll.Roll]:
    count, d, size = word.replace("D", "d", 1).partition("d")
    if not d or (count and not count.isdecimal()):
        return None
    dice_count = int(count) if count else 1
    if dice_count > MAX_DICE:
        raise roll.TooManyDiceError(word, MAX_DICE)
    if size == roll.FATE_DIE_SIZE:
        return roll.Roll(dice_count, roll.FATE_DIE_SIZE)
    if size.isdecimal() and int(size) > 0:
        return roll.Roll(dice_count, int(size))
    if count or size.isdecimal():
        # "4dT", "2d0": clearly meant as a roll
        raise roll.InvalidDieSizeError(word, size)
    # "drop", "dex": not a roll at all
    return None


def _is_identifier(text: str) -> bool:
    return len(text) > 0 and all(c.isalnum() or c == "_" for c in text)


def _classify(word: str) -> roll.Expression:
    number = parse_number(word)
    if number is not None:
        return roll.Number(number)
    dice = _parse_roll(word)
    if dice is not None:
        return dice
    if word in OPERATORS:
        return OPERATORS[word]()
    if word.startswith("$") and _is_identifier(word[1:]):
        return roll.Variable(word[1:])
    return roll.Other(word)


@lark.v_args(inline=True)
class _RollParser(lark.Transformer):
    def start(self, nodes):
        return nodes

    def args(self, *exprs):
        return [node for expr in exprs for node in expr]

    def expr(self, *items):
        return [
            _classify(str(item)) if isinstance(item, lark.Token) else item
            for item in items
        ]

    def call(self, function: lark.Token, parameters: typing.List[roll.Expression]):
        return functions.resolve_function_call(str(function)[:-1], parameters)


_grammar_file = os.path.join(os.path.dirname(__file__), "roll.lark")
with open(_grammar_file) as f:
    _grammar = lark.Lark(f.read(), parser="lalr")


def lex(source: str) -> typing.List[roll.Expression]:
    """Turn notation into a flat list of unbound nodes.

    Function calls become single Method nodes whose parameters are lexed
    the same way. Operators are left without operands.
    """
    try:
        return _RollParser().transform(_grammar.parse(source))
    except lark.exceptions.VisitError as e:
        raise e.orig_exc
    except lark.exceptions.UnexpectedInput as e:
        raise roll.MalformedNotationError("syntax error in '%s':\n%s" % (source, e))


def _resolve_node(node: roll.Expression) -> roll.Expression:
    if isinstance(node, roll.Method):
        node.parameters = resolve_operands(node.parameters)
        if len(node.parameters) == 0:
            raise roll.MalformedNotationError(
                "%s() has no usable arguments" % node.name()
            )
    return node


def _is_unbound_operator(node: roll.Expression) -> bool:
    return isinstance(node, roll.Operator) and node.operands is None


def resolve_operands(
    nodes: typing.List[roll.Expression],
) -> typing.List[roll.Expression]:
    """Bind every operator to its neighbours, left to right.

    There is no precedence: an operator's left operand is whatever was
    built last, so ``2 + 3 * 4`` is ``(2 + 3) * 4``.
    """
    words = []
    for node in nodes:
        if isinstance(node, roll.Other):
            logger.warning("ignoring unrecognised token '%s'", node)
        else:
            words.append(node)

    resolved: typing.List[roll.Expression] = []
    i = 0
    while i < len(words):
        node = words[i]
        if _is_unbound_operator(node):
            operator = typing.cast(roll.Operator, node)
            if (
                not resolved
                or i + 1 >= len(words)
                or _is_unbound_operator(words[i + 1])
            ):
                raise roll.MalformedNotationError(
                    "operator '%s' is missing an operand" % operator.symbol
                )
            operator.operands = (resolved.pop(), _resolve_node(words[i + 1]))
            resolved.append(operator)
            i += 2
        else:
            resolved.append(_resolve_node(node))
            i += 1
    return resolved


@functools.lru_cache(maxsize=1024)
def parse(source: str) -> typing.Tuple[roll.Expression, ...]:
    nodes = resolve_operands(lex(source))
    if len(nodes) == 0:
        raise roll.MalformedNotationError(
            "cannot roll '%s', please check your syntax and try again" % source
        )
    return tuple(nodes)
