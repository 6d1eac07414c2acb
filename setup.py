"""Setup configuration for pod2read package."""
from setuptools import find_packages, setup

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="pod2read",
    version="0.1.0",
    author="Your Name",
    author_email="your.email@example.com",
    description="Turn long video transcripts into paced, structured readings with a local Ollama model",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/yourusername/pod2read",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.9",
    install_requires=[
        "requests>=2.28.0",
        "pydantic>=2.0.0",
        "tiktoken>=0.5.0",
        "python-dotenv>=1.0.0",
        "youtube-transcript-api>=1.0.0",
        "pytube>=15.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "black>=23.0.0",
            "flake8>=6.0.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "pod2read=pod2read.main:main",
        ],
    },
)
