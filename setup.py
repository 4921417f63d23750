# -*- coding: utf-8 -*-
import setuptools
import pathlib
import site
import sys

# odd bug with develop (editable) installs, see: https://github.com/pypa/pip/issues/7953
site.ENABLE_USER_SITE = "--user" in sys.argv[1:]

required = [
    "numpy",
    "scipy",
    "simplejson>= 3.19.2",
    "mashumaro[msgpack]",
    "pyzmq",
    "loguru",
    "rich>=13.0.0",
    "click>=8.0.0",
    "tqdm",
]

extras = {
    "test": ["pytest"],
}

here = pathlib.Path(__file__).parent.resolve()

long_description = (here / "README.md").read_text(encoding="utf-8")

# Read version
version = {}
with open("src/autocal/_version.py", "r") as f:
    exec(f.read(), version)

if __name__ == "__main__":
    setuptools.setup(
        name="autocal",
        version=version["__version__"],
        description="Automated calibration of A2D cards on remote data-acquisition units.",
        long_description=long_description,
        long_description_content_type="text/markdown",
        keywords=[
            "A2D",
            "Calibration",
            "Data Acquisition",
        ],
        classifiers=[
            "License :: OSI Approved :: MIT License",
            "Development Status :: 2 - Pre-Alpha",
        ],
        license="MIT",
        package_dir={"": "src"},
        packages=setuptools.find_packages(
            where="src",
            exclude=["*.test", "*.test.*", "test.*", "test", "test_*"],
        ),
        entry_points={
            "console_scripts": [
                "autocal=autocal.cli:cli",
            ],
        },
        install_requires=required,
        extras_require=extras,
        python_requires=">= 3.11",
        package_data={"": ["*.md", "*.json"], "autocal.system": ["systems/*.ini"]},
        setup_requires=["wheel"],  # force install of wheel first
    )
