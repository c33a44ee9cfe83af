"""pyg1

A Python toolbox for G1-conforming multipatch spline spaces.
"""

__version__ = '0.1.0'
