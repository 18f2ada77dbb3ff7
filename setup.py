"""
DocSpace setup.py — Package configuration and CLI entry point.
"""

from setuptools import find_packages, setup

setup(
    name="docspace",
    version="1.0.0",
    description="DocSpace — Permission-aware file/folder store with collaborative document editing",
    packages=find_packages(include=["docspace", "docspace.*"]),
    python_requires=">=3.11",
    entry_points={
        "console_scripts": [
            "docspace=docspace.cli:main",
        ],
    },
    install_requires=[
        "fastapi>=0.110",
        "uvicorn>=0.29",
        "python-multipart>=0.0.9",
        "sqlalchemy[asyncio]>=2.0",
        "aiosqlite>=0.20",
        "asyncpg>=0.29",
        "pydantic>=2.5",
        "pyyaml>=6.0",
        "httpx>=0.27",
        "PyJWT>=2.8",
        "boto3>=1.34",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
)
