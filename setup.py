from setuptools import setup


setup(
    name="dynamic-notes",
    version="0.1.0",
    description="Rule-driven account notes for spreadsheet workbooks",
    packages=["dynamic_notes"],
    python_requires=">=3.10",
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
        "streamlit",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "dynamic-notes=dynamic_notes.cli:main",
        ]
    },
)
