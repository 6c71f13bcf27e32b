from setuptools import setup, find_packages

setup(
    name="hbmhg",
    version="0.1.0",
    description="Urinary mercury trends in pooled human biomonitoring studies, with Monte Carlo harmonisation of fish consumption",
    long_description=open("README.md").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Scientific/Engineering :: Medical Science Apps.",
    ],
    python_requires=">=3.9",
    install_requires=[
        "pandas>=1.5.0",
        "numpy>=1.20.0",
        "matplotlib>=3.4.0",
        "statsmodels>=0.13.0",
        "scipy>=1.7.0",
        "openpyxl>=3.0.0",
        "pydantic-settings>=2.0.0",
    ],
    extras_require={
        "dev": ["pytest"],
    },
)
