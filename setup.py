from pathlib import Path

from setuptools import find_packages, setup

ROOT = Path(__file__).parent


def read_version() -> str:
    for line in (ROOT / "solreward" / "__init__.py").read_text().splitlines():
        if line.startswith("__version__"):
            return line.split("=", 1)[1].strip().strip('"')
    raise RuntimeError("version not found")


setup(
    name="solreward",
    version=read_version(),
    description="Reward eligibility checks from Solana token balances and CLMM positions",
    packages=find_packages(exclude=("tests", "tests.*")),
    python_requires=">=3.11",
    install_requires=[
        "aiohttp>=3.9",
        "cachetools>=5.3",
        "orjson>=3.9",
        "prometheus-client>=0.17",
        "pydantic>=2.5",
        "solders>=0.21",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "solreward-scan=solreward.cli:main",
        ],
    },
)
