from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="campusflow",
    version="1.0.0",
    description="CampusFlow multi-school management system",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=['tests', 'tests.*']),
    py_modules=[
        'app',
        'app_models',
        'build',
        'config',
        'data_isolation_helpers',
        'database',
        'forms',
        'gunicorn_config',
        'health',
        'page_cache',
        'security',
    ],
    include_package_data=True,
    install_requires=[
        'Flask>=2.3.3',
        'Flask-WTF>=1.2.1',
        'python-dotenv>=1.0.0',
        'WTForms>=3.0.1',
        'Werkzeug>=2.3.7',
        'gunicorn>=21.2.0',
        'bcrypt>=4.0.1',
        'pymongo>=4.6',
    ],
    extras_require={
        'test': [
            'pytest>=7.4',
            'mongomock>=4.1',
        ],
    },
    python_requires='>=3.9',
    classifiers=[
        "Programming Language :: Python :: 3",
        "Framework :: Flask",
        "Operating System :: OS Independent",
    ],
)
