#!/usr/bin/env python
"""Setup configuration for FHIR Bundle Validator."""

from setuptools import find_packages, setup

setup(
    name="fhir-bundle-validator",
    version="0.1.0",
    description="Layered FHIR R4 Bundle validation with JSON pointer error locations",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "pydantic>=2.5.0",
        "pydantic-settings>=2.0.0",
        "fhirclient>=4.1.0",
        "structlog>=23.2.0",
        "prometheus-client>=0.19.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
)
