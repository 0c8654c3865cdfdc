from setuptools import setup, find_packages

setup(
    name="medreminder",
    version="0.1.0",
    packages=find_packages(include=["medreminder", "medreminder.*"]),
    install_requires=[
        "sqlalchemy",
        "celery",
        "kombu",
        "redis",
        "prometheus_client",
        "python-dotenv",
        "pydantic",
        "pydantic-settings",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
)
