from setuptools import setup
with open("README.md") as fh:
    long_description = fh.read()

setup(
    name="acgannotator",
    version ='0.0.1',
    author="Ali Mahmoudi",
    author_email="alimahmoodi29@gmail.com",
    description="Summarize a posterior sample of ancestral conversion graphs",
    long_description=long_description,
    packages=["acgannotator"],
    long_description_content_type="text/markdown",
    python_requires=">=3.6",
    entry_points={
        "console_scripts": [
            "acgannotator=acgannotator.__main__:main",
        ]
    },
    install_requires=[
        "msprime",
        "tskit",
        "numpy",
        "pandas",
        "tqdm",
        "sortedcontainers",
        "biopython"
    ],
    extras_require={
        "test": ["pytest"],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "License :: OSI Approved :: MIT License",
        "Operating System :: MacOS :: MacOS X",
        "Operating System :: POSIX",
        "Development Status :: 3 - Alpha"
    ],
)
