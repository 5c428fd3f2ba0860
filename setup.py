from setuptools import setup, find_packages

setup(
    name="tracker-catalog-miner",
    version="1.0.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    package_data={"catalog_miner": ["config/*.json"]},
    include_package_data=True,
    install_requires=[
        "httpx>=0.26.0",
        "orjson>=3.9.0",
        "aiofiles>=23.2.1",
        "beautifulsoup4>=4.12.0",
        "lxml>=4.9.0",
        "tqdm>=4.66.0",
        "click>=8.1.0",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "catalog-miner=catalog_miner.cli:main",
        ],
    },
    python_requires=">=3.8",
)
