"""Setup script for the vermilinks package."""

from setuptools import find_packages, setup

setup(
    name="vermilinks-telemetry",
    version="0.1.0",
    description="VermiLinks vermicompost monitor telemetry sync engine",
    author="VermiLinks",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        "pyyaml",
        "python-dotenv",
        "paho-mqtt>=2.0.0",
        "aiohttp",
        "python-socketio[asyncio_client]>=5.0",
    ],
    extras_require={
        "dev": [
            "pytest",
            "pytest-asyncio",
            "black",
            "isort",
            "mypy",
        ],
    },
    entry_points={
        "console_scripts": [
            "vermilinks-sync=vermilinks.telemetry:main",
        ],
    },
)
