from setuptools import setup, find_packages

setup(
    name="cruntime",
    version="0.1.0",
    description="Pluggable container runtime adapters for preparing Kubernetes nodes",
    author="",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.8",
    install_requires=[
        "paramiko>=3.4.0",
        "pyyaml>=6.0.1",
        "click>=8.1.7",
        "jinja2>=3.1.2",
        "packaging>=23.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "cruntime=cruntime.cli:main",
        ],
    },
    include_package_data=True,
)
