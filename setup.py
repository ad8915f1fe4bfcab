# setup.py
"""Setup script for stepflow."""

from setuptools import setup, find_packages

setup(
    name="stepflow-sdk",
    version="1.0.0",
    description="Durable step functions driven by an external orchestrator",
    packages=find_packages(include=["stepflow", "stepflow.*"]),
    include_package_data=True,
    install_requires=[
        "click>=8.0",
        "pyyaml>=6.0",
        "aiohttp>=3.8",
        "pydantic>=2.0",
        "pydantic-core>=2.0",
        "pydantic-settings>=2.0",
        "structlog>=23.1",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
            "black>=23.0",
            "flake8>=6.0",
        ]
    },
    entry_points={
        "console_scripts": [
            "stepflow=stepflow.cli.main:cli",
        ],
    },
    python_requires=">=3.8",
)
