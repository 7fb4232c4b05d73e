"""Statistical fairness checks for the die roller.

Each check rolls ``1d<sides>`` many times through the full notation
pipeline, tabulates how often each face came up, and compares the result
against a uniform distribution with a chi-square goodness-of-fit test.
"""

import argparse
import io
import logging
import os
import sys
import typing

import pandas
import plotly.express as px
import plotly.graph_objects as go

from .roll import ImageResult
from .roller import Roller

logger = logging.getLogger(__name__)

# chi-square critical values at p=0.05, keyed by number of sides
CRITICAL_VALUES: typing.Dict[int, float] = {
    4: 7.81,
    6: 11.07,
    8: 14.07,
    10: 16.92,
    12: 19.68,
    20: 30.14,
}

DEFAULT_CONFIGURATIONS: typing.Tuple[typing.Tuple[int, int], ...] = (
    (4, 40000),
    (6, 60000),
    (8, 80000),
    (10, 100000),
    (12, 120000),
    (20, 200000),
)


def roll_distribution(
    sides: int, rolls: int, roller: typing.Optional[Roller] = None
) -> pandas.DataFrame:
    if roller is None:
        roller = Roller()
    notation = "1d%s" % sides

    counts = {value: 0 for value in range(1, sides + 1)}
    for i in range(rolls):
        if i and i % 100000 == 0:
            logger.debug("completed %s of %s rolls of %s", i, rolls, notation)
        counts[int(roller.roll(notation).total)] += 1

    data = pandas.DataFrame(
        {"value": list(counts.keys()), "count": list(counts.values())}
    )
    data["percentage"] = data["count"] / rolls * 100
    data["expected_percentage"] = 100 / sides
    data["deviation"] = data["percentage"] - data["expected_percentage"]
    return data


def chi_square(distribution: pandas.DataFrame) -> float:
    expected = distribution["count"].sum() / len(distribution)
    return float(((distribution["count"] - expected) ** 2 / expected).sum())


def is_fair(distribution: pandas.DataFrame) -> bool:
    sides = len(distribution)
    if sides not in CRITICAL_VALUES:
        raise ValueError("no critical value is known for d%s" % sides)
    return chi_square(distribution) < CRITICAL_VALUES[sides]


def _distribution_table(distribution: pandas.DataFrame) -> str:
    result = "| Value | Count | Percentage | Expected % | Deviation |\n"
    result += "|-------|-------|------------|------------|-----------|\n"
    columns = ["value", "count", "percentage", "expected_percentage", "deviation"]
    for value, count, percentage, expected, deviation in distribution[
        columns
    ].itertuples(index=False, name=None):
        result += "| %s | %s | %.2f%% | %.2f%% | %+.2f%% |\n" % (
            value,
            "{:,}".format(count),
            percentage,
            expected,
            deviation,
        )
    return result


def collect_distributions(
    configurations: typing.Iterable[typing.Tuple[int, int]] = DEFAULT_CONFIGURATIONS,
    roller: typing.Optional[Roller] = None,
) -> typing.List[typing.Tuple[int, int, pandas.DataFrame]]:
    return [
        (sides, rolls, roll_distribution(sides, rolls, roller))
        for sides, rolls in configurations
    ]


def render_report(
    results: typing.Sequence[typing.Tuple[int, int, pandas.DataFrame]]
) -> str:
    report = "# Dice Roller Statistical Fairness\n\n"
    report += "## Test Methodology\n\n"
    report += "| Die Type | Number of Rolls |\n|----------|-----------------|\n"
    for sides, rolls, _ in results:
        report += "| d%s | %s |\n" % (sides, "{:,}".format(rolls))
    report += (
        "\nEach face was counted and a chi-square statistic computed"
        " against an ideal uniform distribution.\n\n## Distribution Results\n\n"
    )

    summary = []
    for sides, _, distribution in results:
        statistic = chi_square(distribution)
        summary.append((sides, statistic))
        report += "### D%s Distribution\n\n" % sides
        report += "**Chi-Square Value:** %.2f\n\n" % statistic
        report += _distribution_table(distribution) + "\n"

    report += "## Conclusion\n\n"
    report += "| Die Type | Chi-Square Value | Critical Value (p=0.05) | Result |\n"
    report += "|----------|------------------|-------------------------|--------|\n"
    for sides, statistic in summary:
        critical = CRITICAL_VALUES.get(sides)
        if critical is None:
            report += "| d%s | %.2f | n/a | n/a |\n" % (sides, statistic)
        else:
            report += "| d%s | %.2f | %.2f | %s |\n" % (
                sides,
                statistic,
                critical,
                "Fair" if statistic < critical else "Unfair",
            )
    return report


def fairness_report(
    configurations: typing.Iterable[typing.Tuple[int, int]] = DEFAULT_CONFIGURATIONS,
    roller: typing.Optional[Roller] = None,
) -> str:
    return render_report(collect_distributions(configurations, roller))


def distribution_figure(distribution: pandas.DataFrame, title: str) -> go.Figure:
    fig = px.bar(
        distribution,
        x=distribution["value"].astype(str),
        y="percentage",
        title=title,
    )
    fig.update_traces(name="Actual Distribution", showlegend=True)
    fig.add_trace(
        go.Scatter(
            x=distribution["value"].astype(str),
            y=distribution["expected_percentage"],
            mode="lines",
            name="Expected Distribution",
            line={"dash": "dash", "width": 2},
        )
    )
    fig.update_xaxes(title_text="die value")
    fig.update_yaxes(
        title_text="percentage (%)",
        range=[0, distribution["percentage"].max() * 1.1],
    )
    fig.add_annotation(
        x=0.5,
        y=1.05,
        xref="paper",
        yref="paper",
        text="Chi-Square: %.2f" % chi_square(distribution),
        showarrow=False,
    )
    return fig


def distribution_chart(distribution: pandas.DataFrame, title: str) -> ImageResult:
    stream = io.BytesIO()
    distribution_figure(distribution, title).write_image(file=stream, format="png")
    return ImageResult(stream.getvalue())


def main(argv: typing.Optional[typing.List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Roll each die many times and report how fair the roller is."
    )
    parser.add_argument(
        "--die",
        type=int,
        action="append",
        dest="dice",
        metavar="SIDES",
        help="die to test; repeat for several (default: d4 d6 d8 d10 d12 d20)",
    )
    parser.add_argument(
        "--rolls-per-side",
        type=int,
        default=10000,
        help="rolls per face of each die (default: %(default)s)",
    )
    parser.add_argument(
        "--output", default=None, help="write the markdown report here, not stdout"
    )
    parser.add_argument(
        "--charts", default=None, help="directory to write one PNG chart per die to"
    )
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args(argv)

    if args.rolls_per_side < 1 or any(sides < 1 for sides in args.dice or []):
        parser.error("dice and rolls per side must be positive")

    logging.basicConfig(
        level=args.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    dice = args.dice or [sides for sides, _ in DEFAULT_CONFIGURATIONS]
    configurations = [(sides, sides * args.rolls_per_side) for sides in dice]
    logger.info("testing %s", ", ".join("d%s" % sides for sides in dice))
    results = collect_distributions(configurations)

    report = render_report(results)
    if args.output is None:
        print(report)
    else:
        with open(args.output, "w") as f:
            f.write(report)
        logger.info("wrote report to %s", args.output)

    if args.charts is not None:
        os.makedirs(args.charts, exist_ok=True)
        for sides, _, distribution in results:
            path = os.path.join(args.charts, "d%s-distribution.png" % sides)
            chart = distribution_chart(distribution, "D%s Distribution" % sides)
            with open(path, "wb") as f:
                f.write(chart.data)
            logger.info("wrote chart to %s", path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
