from setuptools import setup, find_packages

setup(
    name="mcpskill",
    version="0.1.0",
    description="Daemon-based CLI client that keeps one MCP server session alive across shell invocations",
    author="phisanti",
    author_email="tisalon@outlook.com",
    license="MIT",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "aiohttp>=3.9",
        "mcp>=1.9,<2",
        "python-dotenv>=1.0.0",
        "requests>=2.31",
        "typer>=0.12",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
        ],
    },
    entry_points={
        "console_scripts": [
            "mcp_skill=mcpskill.main:mcp_skill",
        ],
    },
    python_requires=">=3.10",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
)
