"""Setup file for development installation."""

from setuptools import setup, find_packages

setup(
    name="artisan-market-core",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.9",
    install_requires=[
        "fastapi>=0.110",
        "pydantic>=2.0",
        "structlog>=23.1",
        "prometheus-client>=0.17",
        "opentelemetry-instrumentation-fastapi>=0.41b0",
        "tenacity>=8.2",
        "python-dotenv>=1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.21",
            "httpx>=0.24",
        ],
    },
)
