"""Build configuration for drove.

The core package is pure Python with no required dependencies. Optional
extras pull in the integrations:

    pip install drove[redis]   # RedisValueCache
    pip install drove[fast]    # orjson serialization, blake3 key hashing
"""

from pathlib import Path

from setuptools import find_packages, setup

README = Path(__file__).parent / "README.md"

setup(
    name="drove",
    version="0.1.0",
    description="Batched, cached async loading of key-addressed data, with an optional external value cache.",
    long_description=README.read_text(encoding="utf-8") if README.exists() else "",
    long_description_content_type="text/markdown",
    python_requires=">=3.10",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[],
    extras_require={
        "redis": ["redis>=5.0.1"],
        "fast": ["orjson>=3.9", "blake3>=0.4"],
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
            "fakeredis>=2.20",
            "redis>=5.0.1",
            "orjson>=3.9",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Framework :: AsyncIO",
        "Topic :: Software Development :: Libraries",
    ],
)
