"""
Setup script for mini-trainer-engine.

Mini Trainer Engine is the progress and gamification core of the
configurable learning trainers. It serves three roles:

1. Session Engine - Attempts, retries and level pass/fail for one exercise run
2. Gamification - Stars, levels, streaks and badges credited exactly once
3. Persistence - Fast profile snapshot plus a durable result log

The 'mini-trainer' command is a terminal front-end over the same services.
"""

from setuptools import find_packages, setup

setup(
    name="mini-trainer-engine",
    version="1.0.0",
    description="Progress, scoring and badge engine for configurable learning trainers",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="Mini Trainer",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["config"],
    python_requires=">=3.11",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Database
        "sqlalchemy>=2.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "mini-trainer=mini_trainer.delivery.trainer_cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Education",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="learning gamification trainer education badges streaks",
)
