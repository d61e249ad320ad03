from setuptools import setup, find_namespace_packages

setup(
    name="refillguard",
    version="0.1.0",
    packages=find_namespace_packages(include=["refillguard", "refillguard.*"]),
    python_requires=">=3.11",
    install_requires=[
        "sqlalchemy[asyncio]>=2.0",
        "asyncpg>=0.29",
        "aiosqlite>=0.19",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
)
