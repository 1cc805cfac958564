"""Setup configuration for the audit sampling engine."""

from pathlib import Path

from setuptools import find_packages, setup

# Read long description from README
readme_file = Path(__file__).parent / "README.md"
long_description = (
    readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""
)

setup(
    name="audit-sampling-engine",
    version="1.0.0",
    author="r00tmebaby",
    description="Statistical sample sizing and selection for audit testing",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/r00tmebaby/audit-sampling-engine",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "pydantic>=2.0.0",
        "structlog>=24.1.0",
        "fastapi>=0.110.0",
        "uvicorn>=0.27.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "httpx>=0.27.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "audit-sample=audit_sampling.main:main",
            "audit-sampling-api=sampling_api.main:run",
        ],
    },
    classifiers=[
        "Development Status :: 5 - Production/Stable",
        "Intended Audience :: Financial and Insurance Industry",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
