from setuptools import setup, find_packages

setup(
    name="srs-engine",
    version="0.1.0",
    packages=find_packages(include=["srs_engine", "srs_engine.*"]),
    install_requires=[
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "PyYAML>=6.0",
        "numpy>=1.22.0",
        "sqlalchemy>=2.0.0",
        "python-dotenv>=0.19.0",
    ],
    extras_require={
        "test": ["pytest>=7.0.0"],
    },
    python_requires=">=3.9",
)
