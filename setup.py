from setuptools import find_packages, setup

setup(
    name="hinoto",
    version="0.1.0",
    description="Runtime-independent HTTP requests and responses for Python web runtimes",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.10",
    install_requires=[
        "aiohttp >= 3.9",
        "awslambdaric >= 2.0",
        "fastapi >= 0.100",
        "flask >= 3.0",
        "typing_extensions >= 4.10",
    ],
    extras_require={
        "test": [
            "httpx >= 0.27",
            "pytest >= 8.0",
            "pytest-asyncio >= 0.23",
        ],
    },
)
