from setuptools import setup


setup(
    name="catalog-doctor",
    version="0.1.0",
    description="Local enrichment and duplicate detection for e-commerce product spreadsheets",
    packages=["catalog_doctor", "catalog_doctor.engine"],
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
        "rapidfuzz",
        "structlog",
    ],
    extras_require={
        "excel-legacy": ["xlrd"],
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "catalog-doctor=catalog_doctor.cli:main",
        ]
    },
)
