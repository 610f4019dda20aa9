#!/usr/bin/env python3
"""
Setup script for Calico Migration Tool
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="calico-migration",
    version="0.1.0",
    author="Calico Migration Tool Contributors",
    author_email="maintainers@example.com",
    description="Convert an existing manifest-based Calico install into an installation config",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["calico_migration"],
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Development Status :: 4 - Beta",
        "Intended Audience :: System Administrators",
        "Topic :: System :: Systems Administration",
    ],
    python_requires=">=3.8",
    install_requires=[
        "kubernetes>=26.1.0",
        "urllib3>=1.26",
        "pyyaml>=6.0.1",  # Using newer version that has pre-built wheels
        "click>=8.1.3",
        "rich>=13.3.5",
        "jinja2>=3.1.2",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
        ],
        "dev": [
            "pytest>=7.0.0",
            "black>=23.0.0",
            "isort>=5.12.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "calico-migration=calico_migration:cli",
        ],
    },
    include_package_data=True,
)
