"""
Setup script for the PDF generator service.

Allows development installation with `pip install -e .`
Chromium itself is installed separately with `playwright install chromium`.
"""

from setuptools import setup, find_packages

setup(
    name="pdf-generator-service",
    version="0.1.0",
    packages=find_packages(include=["pdf_generator_service", "pdf_generator_service.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.100",
        "uvicorn>=0.23",
        "pydantic>=2.0",
        "pydantic-settings>=2.0",
        "python-dotenv>=1.0",
        "playwright>=1.40",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
            "httpx>=0.24",
        ],
    },
    entry_points={
        "console_scripts": [
            "pdf-generator-service=pdf_generator_service.__main__:main",
        ],
    },
)
