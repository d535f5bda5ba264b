#!/usr/bin/env python3
"""
Redis Transfer工具的安装配置文件
"""

from setuptools import setup, find_packages
import os

# 读取README文件
def read_readme():
    readme_path = os.path.join(os.path.dirname(__file__), 'README.md')
    if os.path.exists(readme_path):
        with open(readme_path, 'r', encoding='utf-8') as f:
            return f.read()
    return "Redis Transfer - 逐键复制Redis实例的工具"

# 读取requirements文件
def read_requirements():
    requirements_path = os.path.join(os.path.dirname(__file__), 'requirements.txt')
    if os.path.exists(requirements_path):
        with open(requirements_path, 'r', encoding='utf-8') as f:
            return [line.strip() for line in f if line.strip() and not line.startswith('#')]
    return [
        'redis>=4.0.0',
        'click>=8.0.0',
        'pyyaml>=6.0',
        'tqdm>=4.60.0',
        'colorlog>=6.0.0',
        'python-dotenv>=1.0.0',
    ]

setup(
    name="redis-transfer",
    version="1.0.0",
    author="redisTransfer Contributors",
    author_email="",
    description="Copy every key of a Redis instance to another, preserving values and TTLs",
    long_description=read_readme(),
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Topic :: Database",
        "Topic :: System :: Systems Administration",
        "Topic :: Utilities",
        "Environment :: Console",
    ],
    python_requires=">=3.8",
    install_requires=read_requirements(),
    extras_require={
        "dev": [
            "pytest>=6.0.0",
            "pytest-cov>=2.10.0",
            "black>=21.0.0",
            "flake8>=3.8.0",
            "mypy>=0.800",
        ],
        "test": [
            "pytest>=6.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "redis-transfer=redis_transfer.cli:main",
        ],
    },
    keywords=[
        "redis",
        "migration",
        "dump",
        "restore",
        "ttl",
        "data-transfer",
        "backup",
    ],
    zip_safe=False,
)
