import asyncio
import atexit
import io
import logging
import os
import shutil
import sys
import typing

import discord
import discord.ext.commands as commands
import yaml

import d20roller.fairness as fairness
import d20roller.functions as roll_functions
import d20roller.roll_parser as roll_parser
from d20roller.roll import DiceRollError, format_number
from d20roller.roller import Roller, RollerOptions

intents = discord.Intents.default()
intents.message_content = True

client = commands.Bot(
    command_prefix="!",
    intents=intents,
    activity=discord.Game(name="!help"),
    status=discord.Status.idle,
)


settings: typing.Dict[str, typing.Any] = {}
userdata: typing.Dict[str, typing.Dict[str, typing.Any]] = {}
options = RollerOptions()


def get_userdata(
    ctx: commands.Context, key: str, default: typing.Callable[[], typing.Any]
):
    server: str = ""
    if ctx.guild is not None:
        server = ctx.guild.id
    else:
        server = ctx.author.id
    userdata.setdefault(server, {})
    if key not in userdata[server]:
        userdata[server][key] = default()
    return userdata[server][key]


def save_userdata():
    result = {}
    for server, datas in userdata.items():
        result[server] = {}
        for key, value in datas.items():
            result[server][key] = USERDATA_ON_SAVE[key](value)
    with open("userdata.yaml", "w") as f:
        yaml.safe_dump(result, f)


@client.event
async def on_ready():
    print("We have logged in as {0.user}".format(client))


class VariableTable(typing.Dict[str, typing.Union[int, float]]):
    @classmethod
    def on_load(cls, raw_data) -> "VariableTable":
        return VariableTable(raw_data)

    @classmethod
    def on_save(cls, table: "VariableTable"):
        return dict(table)


USERDATA_ON_LOAD: typing.Dict[str, typing.Callable[[typing.Any], typing.Any]] = {
    "variables": VariableTable.on_load,
}
USERDATA_ON_SAVE: typing.Dict[str, typing.Callable[[typing.Any], typing.Any]] = {
    "variables": VariableTable.on_save,
}


def make_roller(ctx: commands.Context) -> Roller:
    variables = dict(settings.get("variables") or {})
    variables.update(get_userdata(ctx, "variables", VariableTable))
    return Roller(roll_map=settings.get("map"), variables=variables, options=options)


def _parse_value(text: str) -> typing.Union[int, float]:
    value = roll_parser.parse_number(text)
    if value is None:
        raise ValueError("%s is not a number" % text)
    return value


@client.command(
    brief="server roll variables",
    description="""!var [<name>] [<value>]

Parameters:
    name - The variable to get/set, without the leading $.
    value - Either a number or `remove`.

Result:
    Keeps track of variables that can be used in !roll as $name.

    With no arguments, lists every variable on this server.
    With one argument, shows a single variable.
    With two arguments, sets the variable to a number or removes it.
""",
)
async def var(
    ctx: commands.Context,
    name: typing.Optional[str] = None,
    value: typing.Optional[str] = None,
):
    table: VariableTable = get_userdata(ctx, "variables", VariableTable)

    async def print_variable(name: str):
        await ctx.send("**$%s** is **%s**." % (name, format_number(table[name])))

    if name is None:
        if len(table.keys()) == 0:
            await ctx.send("No variables are currently defined.")
        else:
            for name in sorted(table.keys()):
                await print_variable(name)
        return

    name = name.lstrip("$")

    if value is None:
        if name in table:
            await print_variable(name)
        else:
            await ctx.send("error: variable `%s` is not defined." % name)
        return

    if value == "remove":
        table.pop(name, None)
        await ctx.send("Variable **$%s** removed." % name)
    else:
        try:
            table[name] = _parse_value(value)
        except ValueError:
            await ctx.send("error: `%s` is not a number." % value)
            return
        await print_variable(name)

    save_userdata()


def _format_breakdown(breakdown) -> str:
    return ", ".join(
        "%s → %s" % (label, format_number(value))
        for entry in breakdown
        for label, value in entry.items()
    )


def describe_roll(roller: Roller, notation: typing.Optional[str]) -> str:
    result = roller.roll(notation)
    parsed = " ".join(str(node) for node in roll_parser.parse(result.notation))
    message = "**Input:** %s\n" % result.notation
    if parsed != result.notation:
        message += "**=>** %s\n" % parsed
    if result.breakdown:
        message += "**Rolls:** %s\n" % _format_breakdown(result.breakdown)
    return message + "**Result:** %s" % format_number(result.total)


@client.command(
    name="roll",
    brief="roll dice",
    description="""!roll <expr>

Parameters:
    expr - The dice notation, or the name of a roll from the roll map.

Result:
    Evaluates dice notation. Words are separated by spaces:
        4d6 - Roll four six-sided dice.
        4dF - Roll four Fate dice (-1, 0 or +1 each).
        + - * / - Math. Operators apply left to right,
                  so `2 + 3 * 4` is 20.
        $name - The value of a variable (see !var).
        longsword.dmg.2h - A named roll from the roll map.

    For a list of functions you can use, call !rollhelp.
""",
)
async def roll_(ctx: commands.Context, *args: str):
    try:
        roller = make_roller(ctx)
        notation = " ".join(args) if args else None
        message = await asyncio.wait_for(
            asyncio.get_running_loop().run_in_executor(
                None, describe_roll, roller, notation
            ),
            timeout=settings["timeout"],
        )
        await ctx.send(message)
    except asyncio.TimeoutError:
        await ctx.send("Your roll took too long to evaluate. Sorry!")
    except DiceRollError as e:
        await ctx.send("Error in input: %s" % e.args[0])
    except BaseException as e:
        try:
            await ctx.send("An internal error occured. Sorry!")
        except BaseException:
            pass
        raise e


@client.command(
    brief="get or list functions for !roll",
    description="""!rollhelp [<fn>]

Parameters:
    fn - Optional. The function to describe.

Result:
    Prints help on a !roll function, or if no specific function was
    given, prints a list of all valid functions.
""",
)
async def rollhelp(ctx: commands.Context, *args: str):
    functions_by_name = {
        fn.name(): fn for fn in roll_functions.NAMES_TO_FUNCTIONS.values()
    }
    if not args:
        message = "```\n"
        max_namelen = max(len(x) for x in functions_by_name.keys())
        for name, fn in sorted(functions_by_name.items()):
            message += (
                name + " " * (max_namelen - len(name) + 2) + fn.description() + "\n"
            )
        message += "\nType !rollhelp <name> to get help on the function <name>.```"
        await ctx.send(message)
    else:
        for arg in args:
            fn = functions_by_name.get(arg.lower())
            if fn is None:
                await ctx.send("error: function %s not found." % arg)
            else:
                await ctx.send("```\n" + fn.help() + "\n```")


@client.command(
    name="fairness",
    brief="check the die roller for bias",
    description="""!fairness <sides> [<rolls>]

Parameters:
    sides - The die to test, e.g. 20 for a d20.
    rolls - How many times to roll it. Default is 10000.

Result:
    Rolls the die many times and plots how often each face
    came up, along with the chi-square statistic against a
    perfectly fair die.
""",
)
async def fairness_(ctx: commands.Context, sides: int, rolls: int = 10000):
    max_rolls = settings.get("max_fairness_rolls", 100000)
    if sides < 1 or rolls < 1 or rolls > max_rolls:
        await ctx.send(
            "error: expected 1 or more sides and between 1 and %s rolls." % max_rolls
        )
        return

    def fairness_impl():
        distribution = fairness.roll_distribution(sides, rolls, make_roller(ctx))
        chart = fairness.distribution_chart(distribution, "D%s Distribution" % sides)
        return fairness.chi_square(distribution), chart

    statistic, chart = await asyncio.get_running_loop().run_in_executor(
        None, fairness_impl
    )
    message = "**Chi-square:** %.2f" % statistic
    critical = fairness.CRITICAL_VALUES.get(sides)
    if critical is not None:
        message += " (critical value %.2f, %s)" % (
            critical,
            "fair" if statistic < critical else "unfair",
        )
    await ctx.send(
        message, file=discord.File(io.BytesIO(chart.data), filename="image.png")
    )


def main(argv: typing.List[str] = sys.argv) -> int:
    if not os.path.exists("settings.yaml"):
        shutil.copy(
            os.path.join(os.path.dirname(__file__), "settings.default.yaml"),
            "settings.yaml",
        )
        print(
            "settings.yaml not detected!"
            " A default one has been provided."
            " Please edit that file and re-run this program."
        )
        return 1

    global settings
    with open("settings.yaml") as f:
        settings = yaml.safe_load(f)

    global options
    options = RollerOptions.on_load(settings.get("options"))

    logging.basicConfig(
        level=settings.get("log_level", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    global userdata
    if os.path.exists("userdata.yaml"):
        with open("userdata.yaml") as f:
            for server, raw_userdata in yaml.safe_load(f).items():
                userdata[server] = {}
                for key, value in raw_userdata.items():
                    userdata[server][key] = USERDATA_ON_LOAD[key](value)

    atexit.register(save_userdata)

    client.run(settings["token"], log_handler=None)
    return 0


if __name__ == "__main__":
    sys.exit(main())
