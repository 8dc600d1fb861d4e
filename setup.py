# setup.py
from setuptools import setup, find_packages

setup(
    name="forecast",
    version="0.1.0",
    description="Recurring expense and income scheduling for shared budgeting spaces",
    author="Your Name",
    author_email="you@example.com",
    url="https://github.com/yourusername/forecast",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "click>=7.0",
        "pyyaml>=5.3",
        "python-dotenv>=1.0",
        "fastapi>=0.100",
        "pydantic>=2.0",
        "uvicorn>=0.20",
        "mcp>=1.0,<2",
        "anyio>=3.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "httpx>=0.24",
        ],
    },
    entry_points={
        "console_scripts": [
            "forecast=forecast_tracker.cli:main",
            "forecast-mcp=forecast_tracker.mcp_server:main",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
)
