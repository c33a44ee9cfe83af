from setuptools import setup


setup(
    name = 'pyg1',
    version = '0.1.0',
    description = 'G1-smooth multipatch spline spaces for Isogeometric Analysis',
    long_description = 'pyg1 assembles the global degrees of freedom of G1-smooth spline spaces over planar multipatch domains.\n\nIt builds the sparse transformation from global G1 functions to the local patch bases and provides reduced systems, solvers and reconstruction of the solution.',
    author = 'Clemens Hofreither',
    author_email = 'chofreither@ricam.oeaw.ac.at',

    classifiers=[
        'Programming Language :: Python :: 3',
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Science/Research',
        'Topic :: Scientific/Engineering :: Mathematics',
        'License :: Free For Educational Use',
    ],
    packages = ['pyg1'],

    python_requires = '>=3.6',
    install_requires = [
        'numpy>=1.11',
        'scipy',
        'networkx',
        'matplotlib',
        'tqdm',
    ],
    extras_require = {
        'test': ['pytest'],
        'cholmod': ['scikit-sparse'],
    },
)
