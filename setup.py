from setuptools import setup, find_packages

setup(
    name="datadriven-vibration",
    version="0.1.0",
    description="Data-driven fixed-structure controller synthesis for tip/tilt vibration rejection",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "numpy",
        "scipy",
        "control",
        "cvxpy",
        "clarabel",
    ],
    extras_require={
        "test": ["pytest"],
    },
    python_requires=">=3.10",
)
