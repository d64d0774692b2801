from os import path

from setuptools import setup

this_dir = path.abspath(path.dirname(__file__))
with open(path.join(this_dir, "README.md")) as f:
    long_description = f.read()

setup(
    name="FastRepo",
    description="FastRepo - repository / unit of work data access layer on SQLAlchemy",
    long_description=long_description,
    long_description_content_type="text/markdown",
    version="0.1",
    license="MIT",
    author="Joseph Kim, Benzamin Yoon",
    author_email="cloudeyes@gmail.com",
    packages=["fastrepo", "fastrepo.test", "fastrepo.core"],
    package_data={
        "fastrepo": ["py.typed"],
        "fastrepo.core": ["py.typed"],
        "fastrepo.test": ["py.typed"],
    },
    keywords=["fastrepo", "repository", "unit-of-work", "sqlalchemy", "fastapi"],
    python_requires=">=3.9",
    install_requires=[
        "fastapi",
        "uvicorn",
        "sqlalchemy>=2.0",
        "pydantic>=2",
        "colorama",
    ],
    extras_require={
        "test": [
            "pytest",
            "httpx",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Database",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3.9",
    ],
    entry_points={
        "console_scripts": [
            "fastrepo = fastrepo.command:console_main",
        ]
    },
)
