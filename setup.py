"""Setup script for Tabletop AI Assistant."""

from setuptools import setup, find_packages
import os

# Read the README file
def read_readme():
    readme_path = os.path.join(os.path.dirname(__file__), 'README.md')
    if os.path.exists(readme_path):
        with open(readme_path, 'r', encoding='utf-8') as f:
            return f.read()
    return "Tabletop AI Assistant - permission-gated chat commands and LLM conversation for virtual tabletops"

setup(
    name='tabletop-ai-assistant',
    version='0.1.0',
    description='Chat-driven AI assistant for virtual tabletop sessions',
    long_description=read_readme(),
    long_description_content_type='text/markdown',
    author='Tabletop AI Assistant Team',
    author_email='dev@example.com',

    packages=find_packages(include=['tabletop_assistant', 'tabletop_assistant.*']),
    python_requires='>=3.9',
    install_requires=[
        'pydantic>=2.0.0',
        'click>=8.1.0',
        'python-dotenv>=1.0.0',
        'PyYAML>=6.0',
    ],

    extras_require={
        'openai': ['openai>=1.0.0'],
        'anthropic': ['anthropic>=0.18.0'],
        'all': ['openai>=1.0.0', 'anthropic>=0.18.0'],
        'dev': [
            'pytest>=7.4.0',
            'pytest-asyncio>=0.21.0',
            'pytest-cov>=4.1.0',
            'openai>=1.0.0',
            'anthropic>=0.18.0',
        ],
    },

    entry_points={
        'console_scripts': [
            'tabletop-assistant=tabletop_assistant.cli:cli',
        ],
    },

    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: End Users/Desktop',
        'Topic :: Games/Entertainment :: Role-Playing',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
    ],

    keywords='virtual tabletop rpg chat assistant llm permissions',

    include_package_data=True,
    zip_safe=False,
)
