from setuptools import setup, find_packages

setup(
    name='ptel-coordinate-engine',
    version='0.3',
    packages=find_packages(exclude=['tests', 'tests.*']),
    python_requires='>=3.10',
    install_requires=[
        'Flask',
        'SQLAlchemy>=2.0',
        'pandas',
        'numpy',
        'scipy>=1.10',
        'scikit-learn',
        'geopandas',
        'shapely',
        'pyproj',
        'httpx',
        'rapidfuzz',
        'python-dotenv'
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-asyncio',
        ]
    },
    entry_points={
        'console_scripts': [
            'ptel_api=flask_app.run:main'
        ]
    }
)
