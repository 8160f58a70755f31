"""
Setup script for difficulty-gate.

Difficulty-gate generates language-learning exercises (cloze and
multiple-choice) that sit near a reference item's difficulty:

1. Difficulty scoring - D from lexical, structural, ambiguity and reasoning axes
2. Target profiles - mean and tolerance from 1-3 reference items
3. Guided generation - candidates ranked by distance and gated by similarity

The 'difficulty-gate' command is the CLI entry point; the HTTP API is
served by 'difficulty-gate serve' or 'python main.py'.
"""

from setuptools import find_packages, setup

setup(
    name="difficulty-gate",
    version="0.1.0",
    description="Evaluation-guided generation of difficulty-matched language-learning items",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["config", "main"],
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # HTTP
        "httpx>=0.25.0",
        "fastapi>=0.100.0",
        "uvicorn>=0.23.0",
        # Logging
        "loguru>=0.7.0",
        # Numerics & AI
        "numpy>=1.24.0",
        "google-generativeai>=0.3.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
        "semantic": [
            "sentence-transformers>=2.2.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "difficulty-gate=difficulty_gate.cli.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Environment :: Console",
        "Intended Audience :: Education",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="language-learning cloze multiple-choice difficulty generation",
)
