from setuptools import find_packages, setup

with open("README.md", "r") as fh:
    long_description = fh.read()

setup(
    name="arrowfolder",
    version="0.0.1",
    description="Converts labeled image folders into sharded Arrow datasets for machine learning pipelines.",
    long_description=long_description,
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[
        "click",
        "click_pathlib",
        "datasets",
        "numpy",
        "omegaconf",
        "pyarrow",
        "pydantic>=2.0",
        "tqdm",
    ],
    extras_require={
        "tests": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "arrowfolder=arrowfolder.__main__:main",
        ],
    },
    python_requires=">=3.10",
    include_package_data=True,
)
