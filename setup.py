from setuptools import setup, find_packages

setup(
    name="runprobe",
    version="0.1.0",
    description="Query models and routes of a live Python application through a worker subprocess",
    license="MIT",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "fastapi>=0.110.0,<0.137",
        "python-dotenv>=1.0.0",
        "rich>=13.0.0",
        "SQLAlchemy>=2.0.0",
        "typer>=0.9.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "runprobe=runprobe.main:runprobe",
        ],
    },
    python_requires=">=3.10",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
)
