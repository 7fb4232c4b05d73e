import setuptools

setuptools.setup(
    name="d20roller",
    version="0.0.0",
    classifiers=["Programming Language :: Python :: 3"],
    packages=["d20roller"],
    package_data={"d20roller": ["roll.lark", "settings.default.yaml"]},
    python_requires=">=3.8",
    entry_points={
        "console_scripts": [
            "d20roller=d20roller.__main__:main",
            "d20roller-fairness=d20roller.fairness:main",
        ]
    },
    install_requires=[
        "lark",
        "discord.py",
        "pyyaml",
        "pydantic>=2",
        "plotly",
        "kaleido",
        "pandas",
    ],
    extras_require={"test": ["pytest"]},
)
