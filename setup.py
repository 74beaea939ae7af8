#!/usr/bin/env python3
"""
LoRa Logger - Setup Script

For development installation:
    pip install -e .[dev]
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read version from package
version = "0.1.0"

# Read README
readme_path = Path(__file__).parent / "README.md"
long_description = readme_path.read_text() if readme_path.exists() else ""

setup(
    name="loralogger",
    version=version,
    description="Passive collector recording LoRa packet-forwarder UDP traffic",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="LoRa Logger Project",

    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",

    install_requires=[
        "boto3>=1.26",
        "botocore>=1.29",
        "toml>=0.10",
    ],

    extras_require={
        "dev": [
            "pytest>=7.0",
            "pytest-cov>=3.0",
        ],
    },

    entry_points={
        "console_scripts": [
            "loralogger=loralogger.main:main",
        ],
    },

    classifiers=[
        "Development Status :: 3 - Alpha",
        "Environment :: Console",
        "Intended Audience :: System Administrators",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Communications",
        "Topic :: System :: Logging",
        "Topic :: System :: Networking",
    ],

    keywords="lora lorawan packet-forwarder gateway udp logger dynamodb",
)
