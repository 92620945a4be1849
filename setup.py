from setuptools import setup, find_packages

setup(
    name="pacedreq",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "aiohttp",
        "tqdm"
    ],
    extras_require={
        "test": ["pytest"],
    },
    description="Resilient HTTP request execution with adaptive rate limiting, retries and cancellation.",
    long_description=open('README.md').read(),
    long_description_content_type="text/markdown",
    author="Ludwig",
    author_email="yuzeliu@gmail.com",
    url=None,
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
)
