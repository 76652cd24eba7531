"""Package setup for cafeteria-billing."""

from setuptools import setup, find_packages

setup(
    name="cafeteria-billing",
    version="1.0.0",
    description="Monthly cafeteria meal billing with per-company daily minimums",
    packages=find_packages(include=["cafeteria_billing", "cafeteria_billing.*"]),
    python_requires=">=3.9",
    install_requires=[
        "fastapi>=0.100.0",
        "starlette>=0.27.0",
        "pydantic>=2.0.0",
        "uvicorn>=0.23.0",
        "typer>=0.9.0",
        "rich>=13.0.0",
        "click>=8.0.0",
        "httpx>=0.24.0",
        "pyyaml>=6.0",
        "cachetools>=5.0.0",
        "tzdata>=2023.3",
    ],
    extras_require={
        "pdf": ["reportlab>=4.0.0"],
        "test": ["pytest>=7.0.0", "httpx>=0.24.0"],
        "all": ["reportlab>=4.0.0"],
    },
    entry_points={
        "console_scripts": [
            "cafeteria-billing=cafeteria_billing.cli:app",
        ],
    },
)
