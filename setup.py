#!/usr/bin/env python3
"""
Setup configuration for Playlist-Analyzer
Filter Spotify playlists by tempo, key, energy and more, and save the result
"""

from setuptools import setup, find_packages

# Read README for long description
with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

# Core requirements (always installed)
core_requirements = [
    "spotipy>=2.23.0",
    "requests>=2.31.0",
    "pyyaml>=6.0.1",
    "tqdm>=4.66.1",
    "click>=8.1.7",
    "rich-click>=1.7.0",
]

setup(
    name="playlist-analyzer",
    version="0.1.0",
    author="Playlist-Analyzer Team",
    description="Filter and analyze Spotify playlists by audio features, popularity and duration",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Environment :: Console",
        "Intended Audience :: End Users/Desktop",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Multimedia :: Sound/Audio :: Analysis",
        "Topic :: Internet :: WWW/HTTP :: Dynamic Content",
    ],
    python_requires=">=3.10",
    install_requires=core_requirements,
    extras_require={
        "dev": [
            "pytest>=7.4.3",
            "black>=23.11.0",
            "flake8>=6.1.0",
            "mypy>=1.7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "playlist-analyzer=playlist_analyzer.cli:main",
        ],
    },
    keywords="spotify playlist bpm audio-features analysis cli",
)
