"""
notifyhub setup.py — Package configuration and CLI entry point.
"""

from setuptools import find_packages, setup

setup(
    name="notifyhub",
    version="1.0.0",
    description="notifyhub — Kafka to e-mail / Zalo OA notification relay",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.11",
    entry_points={
        "console_scripts": [
            "notifyhub=notifyhub.cli:main",
        ],
    },
    install_requires=[
        "pydantic>=2.5",
        "redis>=5.0",
        "cryptography>=42.0",
        "pyyaml>=6.0",
        "httpx>=0.27",
        "fastapi>=0.110",
        "uvicorn>=0.29",
        "aiokafka>=0.10",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
)
