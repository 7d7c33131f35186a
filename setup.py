from setuptools import setup, find_packages

setup(
    name="murmur",
    version="0.1.0",
    packages=find_packages(include=["murmur", "murmur.*"]),
    python_requires=">=3.12",
    install_requires=[
        "fastapi",
        "uvicorn[standard]",
        "httpx",
        "pydantic>=2",
        "pydantic-settings",
        "redis>=5",
        "openai>=1",
    ],
    entry_points={
        "console_scripts": ["murmur=murmur.__main__:main"],
    },
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
            "respx",
        ],
    },
)
