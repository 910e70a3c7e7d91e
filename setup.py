"""Shiftswap setup file."""

from setuptools import find_packages, setup  # type: ignore[import-untyped]

setup(
    name="shiftswap",
    version="0.1.0",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    include_package_data=True,
    install_requires=[
        "flask",
        "sqlalchemy>=2.0",
        "firebase-admin",
        "pymysql",
        "pytz",
        "click",
    ],
    extras_require={
        "dev": [
            "pytest",
            "pytest-mock",
            "pytest-cov",
            "mypy",
            "ruff",
            "types-pytz",
        ],
    },
    entry_points={
        "console_scripts": [
            "shiftswap=shiftswap.commands:cli",
        ],
    },
)
