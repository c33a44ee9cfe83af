import numpy as np
import pytest

from pyg1 import bspline, geometry
from pyg1.topology import PatchMesh


def square_patches(nx, ny, p=2, n=4):
    """`nx` x `ny` unit squares, numbered row by row from the bottom left."""
    kv = bspline.make_knots(p, 0.0, 1.0, n)
    return [((kv, kv), geometry.unit_square().translate((i, j)))
            for j in range(ny) for i in range(nx)]

@pytest.fixture
def square_mesh():
    def make(nx, ny, p=2, n=4):
        return PatchMesh(square_patches(nx, ny, p, n))
    return make

def kinked_patches(p=2, n=4):
    """A unit square and a quadrilateral joined along x=1; the quadrilateral
    has a kink at the bottom end of the interface."""
    kv = bspline.make_knots(p, 0.0, 1.0, n)
    P = np.array([[1, 2, 1, 2],
                  [0, -0.5, 1, 1]])
    return [((kv, kv), geometry.unit_square()),
            ((kv, kv), geometry.quad(P))]
