"""Setup script for ical-merger."""

from pathlib import Path

from setuptools import find_packages, setup

# Read the README file
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""

requirements = [
    "icalendar>=5.0,<7",
    "httpx>=0.24",
    "aiohttp>=3.9",
    "pydantic>=2.0",
    "python-dateutil>=2.8",
    "colorlog>=6.0",
]

dev_requirements = [
    "pytest>=7.0",
    "pytest-asyncio>=0.21",
]

setup(
    name="ical-merger",
    version="0.1.0",
    description="Merge several iCalendar feeds into one calendar with a single output timezone",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="ical-merger contributors",
    # Package configuration
    packages=find_packages(exclude=["tests*", "docs*"]),
    include_package_data=True,
    # Dependencies
    install_requires=requirements,
    extras_require={
        "dev": dev_requirements,
    },
    python_requires=">=3.9",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Environment :: Web Environment",
        "Intended Audience :: System Administrators",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Topic :: Office/Business :: Scheduling",
        "Framework :: AsyncIO",
    ],
    keywords="calendar ics icalendar merge timezone outlook google-calendar async",
    # Entry points
    entry_points={
        "console_scripts": [
            "ical-merger=ical_merger.__main__:main",
        ],
    },
    zip_safe=False,
)
