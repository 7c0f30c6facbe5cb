from setuptools import setup, find_packages

setup(
    name="svnbackup",
    version="2.5.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.8",
    install_requires=[
        "psutil",
        "pydantic>=2",
        "pydantic-settings>=2",
    ],
    extras_require={
        "test": ["pytest>=7"],
    },
    entry_points={
        'console_scripts': [
            'svnbackup=svnbackup.cli:main',
        ],
    },
)
