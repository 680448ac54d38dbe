from setuptools import find_packages, setup

setup(
    name="lispcst",
    version="0.1",
    packages=find_packages("src"),
    package_dir={"": "src"},
    license="MIT License",
    author="Christopher Rink",
    author_email="chrisrink10@gmail.com",
    description="A round-trip preserving reader for Clojure source code",
    python_requires=">=3.9",
    install_requires=[
        "attrs",
        "immutables",
        "pyrsistent",
        "python-dateutil",
        "pygments",
        "typing_extensions",
    ],
    extras_require={"test": ["pytest"]},
)
