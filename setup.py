"""Setup configuration for MACROSIGNAL."""

from setuptools import find_packages, setup

setup(
    name="macrosignal",
    version="0.1.0",
    description="Macro Signal Engine — Explainable macro regime, correlation and bias diagnostics",
    author="AETHERVEIL",
    python_requires=">=3.11",
    packages=find_packages(where="src", include=["macrosignal*"]),
    package_dir={"": "src"},
    install_requires=[
        "numpy>=1.26.0",
        "pandas>=2.2.0",
        "pydantic>=2.6.0",
        "pydantic-settings>=2.1.0",
        "pyarrow>=15.0.0",
    ],
    entry_points={
        "console_scripts": [
            "macrosignal=macrosignal.cli:cli_entry",
        ],
    },
    extras_require={
        "dev": [
            "pytest>=8.0.0",
            "pytest-asyncio>=0.23.0",
            "pytest-mock>=3.12.0",
            "python-dotenv>=1.0.0",
        ],
    },
)
