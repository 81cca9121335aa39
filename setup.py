"""
Acervo setup.py — Package configuration and CLI entry point.
"""

from setuptools import find_packages, setup

setup(
    name="acervo",
    version="2.0.0",
    description="Acervo — Media catalog for Backblaze B2",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.11",
    entry_points={
        "console_scripts": [
            "acervo=acervo.cli:main",
        ],
    },
    install_requires=[
        "pydantic>=2.5",
        "pyyaml>=6.0",
        "httpx>=0.27",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
)
