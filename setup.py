"""Setup script for the Parley auth backend"""
from setuptools import find_packages, setup

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="parley",
    version="0.1.0",
    author="Parley Team",
    description="Parley auth backend - registration, login and rotating refresh token sessions",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["parley", "parley.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Framework :: FastAPI",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
    ],
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.110.0",
        "uvicorn[standard]>=0.27.0",
        "sqlalchemy>=2.0.0",
        "alembic>=1.13.0",
        "psycopg2-binary>=2.9.9",
        "pydantic[email]>=2.5.0",
        "pydantic-settings>=2.1.0",
        "python-jose[cryptography]>=3.3.0",
        "argon2-cffi>=23.1.0",
        "slowapi>=0.1.9",
        "prometheus-client>=0.19.0",
        "prometheus-fastapi-instrumentator>=6.1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "httpx>=0.26.0",
        ],
    },
)
