from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="rsem-star-pipeline",
    version="0.1.0",
    description="STAR alignment, bigWig signal tracks and RSEM quantification for RNA-seq",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: POSIX :: Linux",
        "Topic :: Scientific/Engineering :: Bio-Informatics",
    ],
    python_requires=">=3.7",
    install_requires=[
        "pandas>=1.3.0",
        "pysam>=0.16.0",
        "PyYAML>=5.4",
    ],
    extras_require={
        "test": ["pytest>=6.0"],
    },
    entry_points={
        "console_scripts": [
            "rsem-star-pipeline=rsem_star_pipeline.__main__:main",
        ],
    },
)
