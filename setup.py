from setuptools import setup, find_packages

# Core requirements
INSTALL_REQUIRES = [
    "requests>=2.31.0",
    "python-dotenv>=1.0.0",
    "cachetools>=5.3.2",
    "pybreaker>=1.0.1",
    "structlog>=23.2.0",
    "prometheus-client>=0.17.1",
    "pydantic>=2.5.0",
    "click>=8.0.0",
]

# Development requirements
EXTRAS_REQUIRE = {
    "dev": [
        "pytest>=7.4.3",
        "pytest-cov>=4.1.0",
        "feedparser>=6.0.0",
        "black>=23.11.0",
        "flake8>=6.1.0",
        "mypy>=1.7.1",
        "isort>=5.12.0",
        "types-requests>=2.31.0.10",
        "types-cachetools>=5.3.0",
    ],
    "test": [
        "pytest>=7.4.3",
        "pytest-cov>=4.1.0",
        "feedparser>=6.0.0",
    ],
}

setup(
    name="feedcast",
    version="0.1.0",
    description="Podcast feeds kept consistent with asynchronously produced episodes",
    long_description=open("README.md", "r", encoding="utf-8").read(),
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests*", "docs*"]),
    package_data={"feedcast.storage": ["schema.sql"]},
    entry_points={"console_scripts": ["feedcast=feedcast.cli:cli"]},
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.12",
        "Topic :: Multimedia :: Sound/Audio",
    ],
    python_requires=">=3.11",
    install_requires=INSTALL_REQUIRES,
    extras_require=EXTRAS_REQUIRE,
)
