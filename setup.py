"""
Setup script for ic-bn-logs
"""

from setuptools import setup, find_packages

setup(
    name="ic-bn-logs",
    version="0.1.0",
    description="Stream canister logs from all Internet Computer API boundary nodes",
    packages=find_packages(include=["ic_bn_logs", "ic_bn_logs.*"]),
    python_requires=">=3.10",
    install_requires=[
        "websockets>=15.0",
        "httpx>=0.24.0",
        "cbor2>=5.6.0,<6",
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "python-dotenv>=1.0.0",
        "click>=8.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ],
    },
    entry_points={
        "console_scripts": [
            "ic-bn-logs=ic_bn_logs.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
