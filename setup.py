"""
Setup configuration for PTB (County Preterm Birth & NICU Analytics) package.
"""
from setuptools import setup, find_packages

with open("PTB/README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="ptb",
    version="1.0.0",
    author="Analytics Team",
    description="County-level preterm birth and NICU admission analytics pipeline",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["PTB", "PTB.*"]),
    python_requires=">=3.9",
    install_requires=[
        "pandas>=1.5.0",
        "numpy>=1.23.0",
        "statsmodels>=0.14.0",
        "geopandas>=1.0.0",
        "shapely>=2.0.0",
        "matplotlib>=3.6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Healthcare Industry",
        "Intended Audience :: Science/Research",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
