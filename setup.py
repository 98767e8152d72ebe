from setuptools import setup, find_packages

setup(
    name="backoffice_celulares",
    version="0.1.0",
    description="API de back-office (inventario por IMEI, ventas, cuentas por pagar/cobrar) con FastAPI y SQLAlchemy",
    license="MIT",
    packages=find_packages(include=["backoffice", "backoffice.*", "api", "api.*"]),
    include_package_data=True,
    install_requires=[
        "SQLAlchemy>=2.0",
        "fastapi>=0.100",
        "pydantic>=2.0",
        "uvicorn>=0.23",
        "reportlab>=4.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "httpx>=0.24",
        ],
        "postgres": [
            "psycopg2-binary>=2.9",
        ],
    },
    entry_points={
        "console_scripts": [
            "backoffice-api=api.main:run",  # sirve la API con uvicorn
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3.11",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.11",
)
