from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="warden",
    version="0.1.0",
    description="Authentication, session, two-factor and organization access service",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["warden", "warden.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Framework :: FastAPI",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.104.1",
        "uvicorn[standard]>=0.24.0",
        "pydantic[email]>=2.5.0",
        "pydantic-settings>=2.1.0",
        "python-dotenv>=1.0.0",
        "redis>=5.0.1",
        "sqlalchemy>=2.0.23",
        "click>=8.1.7",
        "structlog>=23.2.0",
        "httpx>=0.25.2",
        "cryptography>=43.0.1",
        "bcrypt>=4.1.2",
        "PyJWT>=2.8.0",
        "pyotp>=2.9.0",
        "qrcode[pil]>=7.4.2",
        "webauthn>=2.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.3",
            "pytest-asyncio>=0.21.1",
        ],
    },
    entry_points={
        "console_scripts": [
            "warden=warden.cli:cli",
        ],
    },
)
