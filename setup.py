from setuptools import setup, find_packages

setup(
    name="option-chain-pricer",
    version="0.1.0",
    description="Historical price series and on-demand Black-Scholes option chains",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["main"],
    python_requires=">=3.10",
    install_requires=[
        "numpy>=1.24",
        "pandas>=2.0",
        "scipy>=1.11",
        "pydantic>=2.0",
        "httpx>=0.25",
        "aiosqlite>=0.19",
        "loguru>=0.7",
        "python-dotenv>=1.0",
    ],
    extras_require={
        "test": ["pytest>=7.0", "pytest-asyncio>=0.21"],
        "dev": ["pytest>=7.0", "pytest-asyncio>=0.21", "black", "flake8"],
    },
    entry_points={
        "console_scripts": [
            "chain-pricer=main:main",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Topic :: Office/Business :: Financial",
        "Topic :: Scientific/Engineering",
    ],
)
