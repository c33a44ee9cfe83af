"""Category offset tables and the global index space of a G1 system.

The rows of the transformation matrix are partitioned into categories:

==  =====================  ==========================================
 0  interface              one entity per interface
 1  edge                   free functions of the boundary edges
 2  vertex                 free vertex functions
 3  boundary edge          prescribed boundary edge functions
 4  boundary vertex        prescribed vertex functions
 5  interior               one entity per patch (local basis)
 6  interface interior     one entity per patch (interface basis)
==  =====================  ==========================================

Categories 0 to 4 are chained into one contiguous range of rows; the free
rows are categories 0 to 2 followed by the interior rows, the boundary rows
are categories 3 and 4. Categories 5 and 6 also describe the column blocks of
the per-patch local bases.
"""
from enum import IntEnum

import numpy as np

from . import bspline
from .policy import VertexKind


class Category(IntEnum):
    INTERFACE = 0
    EDGE = 1
    VERTEX = 2
    BOUNDARY_EDGE = 3
    BOUNDARY_VERTEX = 4
    INTERIOR = 5
    INTERFACE_INTERIOR = 6


class IndexRangeError(IndexError):
    """Raised when a global index lies outside the range reserved for it."""
    pass


class OffsetTable:
    """Prefix sums of per-entity counts.

    Entity `e` owns the half-open index range ``[table[e], table[e+1])``.

    Args:
        counts (seq): number of indices per entity
        start (int): first index of the table
    """
    def __init__(self, counts, start=0):
        counts = np.asarray(counts, dtype=int).ravel()
        if np.any(counts < 0):
            raise ValueError('negative count in offset table: %s' % (counts,))
        self.offsets = np.concatenate(([0], np.cumsum(counts))).astype(int) + int(start)
        self.offsets.flags.writeable = False

    def __repr__(self):
        return 'OffsetTable(%s)' % (self.offsets.tolist(),)

    def __len__(self):
        """Number of entities"""
        return len(self.offsets) - 1

    def __getitem__(self, k):
        return self.offsets[k]

    @property
    def first(self):
        return int(self.offsets[0])

    @property
    def last(self):
        return int(self.offsets[-1])

    @property
    def size(self):
        return self.last - self.first

    def count(self, e):
        return int(self.offsets[e+1] - self.offsets[e])

    def range(self, e):
        """The half-open index range `(lo, hi)` of entity `e`."""
        return (int(self.offsets[e]), int(self.offsets[e+1]))

    def shift(self, offset):
        """Return a copy of this table shifted by `offset`."""
        return OffsetTable(np.diff(self.offsets), start=self.first + offset)

    def index(self, e, local):
        """Global index of the `local`-th index of entity `e`."""
        if not 0 <= e < len(self):
            raise IndexRangeError('entity %d out of range (%d entities)' % (e, len(self)))
        local = np.asarray(local)
        n = self.count(e)
        if np.any(local < 0) or np.any(local >= n):
            raise IndexRangeError('local index %s out of range for entity %d with %d indices'
                    % (local, e, n))
        return self.offsets[e] + local


class DofLayout:
    """The chained offset tables of all categories.

    Use :meth:`from_counts` or :meth:`from_classification` to construct one.

    Attributes:
        tables (tuple): the seven :class:`OffsetTable` instances, indexed by :class:`Category`
        dim_K (int): number of columns (size of all local bases)
        dim_G1_Dofs (int): number of free G1 functions (categories 0 to 2)
        dim_G1_Bdy (int): number of boundary functions (categories 3 and 4)
        total (int): number of rows
    """
    def __init__(self, tables):
        assert len(tables) == 7, 'need one table per category'
        for c in range(1, 5):
            assert tables[c].first == tables[c-1].last, 'categories are not chained'
        self.tables = tuple(tables)
        self.dim_K = self.tables[Category.INTERFACE_INTERIOR].last
        self.dim_G1_Dofs = self.tables[Category.VERTEX].last
        self.dim_G1_Bdy = self.tables[Category.BOUNDARY_VERTEX].last - self.tables[Category.BOUNDARY_EDGE].first
        self.total = self.dim_G1_Dofs + self.dim_G1_Bdy + self.dim_K

    @classmethod
    def from_counts(cls, interface, edge, vertex, boundary_edge, boundary_vertex,
                    interior, interface_interior=None):
        """Build the layout from the per-entity counts of each category.

        If `interface_interior` is `None`, the interface functions live in the
        interior bases and both categories share one table; otherwise, the
        interface bases form separate column blocks after the interior ones.
        """
        t0 = OffsetTable(interface)
        t1 = OffsetTable(edge, t0.last)
        t2 = OffsetTable(vertex, t1.last)
        t3 = OffsetTable(boundary_edge, t2.last)
        t4 = OffsetTable(boundary_vertex, t3.last)
        t5 = OffsetTable(interior)
        if interface_interior is None:
            t6 = t5
        else:
            t6 = OffsetTable(interface_interior, t5.last)
            assert len(t6) == len(t5), 'need one interface basis per patch'
        return cls((t0, t1, t2, t3, t4, t5, t6))

    @classmethod
    def from_classification(cls, classification, kvs, interface_kvs=None):
        """Build the layout of a classified domain with the given local bases."""
        return cls.from_counts(
            classification.interface_counts(),
            classification.edge_counts(),
            classification.vertex_counts(),
            classification.boundary_edge_counts(),
            classification.boundary_vertex_counts(),
            [bspline.numdofs(kv) for kv in kvs],
            None if interface_kvs is None else [bspline.numdofs(kv) for kv in interface_kvs])

    def __getitem__(self, category):
        return self.tables[category]

    @property
    def isogeometric(self):
        return self.tables[Category.INTERFACE_INTERIOR] is self.tables[Category.INTERIOR]

    @property
    def boundary_range(self):
        return (self.dim_G1_Dofs, self.dim_G1_Dofs + self.dim_G1_Bdy)

    @property
    def interior_start(self):
        return self.dim_G1_Dofs + self.dim_G1_Bdy

    def row_ranges(self):
        """Half-open row ranges of all row categories; the interior range
        extends to the last row."""
        ranges = {Category(c): (self.tables[c].first, self.tables[c].last) for c in range(5)}
        ranges[Category.INTERIOR] = (self.interior_start, self.total)
        return ranges

    def free_mask(self):
        """0/1 vector selecting the free rows."""
        mask = np.ones(self.total)
        lo, hi = self.boundary_range
        mask[lo:hi] = 0.0
        return mask

    def boundary_mask(self):
        """0/1 vector selecting the boundary rows."""
        return 1.0 - self.free_mask()

    def interior_row(self, patch, local):
        """Row of the trivial global function of a local interior basis function."""
        return self.interior_start + self.tables[Category.INTERIOR].index(patch, local)

    def column(self, patch, local, interface=False):
        """Column of a local basis function of a patch, either in the interior
        basis or in the interface basis."""
        category = Category.INTERFACE_INTERIOR if interface else Category.INTERIOR
        return self.tables[category].index(patch, local)

    def category_index(self, category, entity, local):
        """Global row of the `local`-th function of `entity` in `category`."""
        category = Category(category)
        if category == Category.INTERIOR:
            return self.interior_row(entity, local)
        if category == Category.INTERFACE_INTERIOR:
            raise ValueError('interface interior functions only index columns')
        return self.tables[category].index(entity, local)

    ## row lookups for the three kinds of entities

    def interface_row(self, i, bfID, size_plus, kinks=(False, False), endpoints=None, redirect=False):
        """Row of the interface function `bfID` of interface `i`.

        The interface space has ``2*size_plus - 1`` functions; the first
        `size_plus` are the "plus" functions, the rest the "minus" functions.
        If `redirect` is set, the first and last plus and minus functions (and
        the functions next to a kink) are boundary vertex functions of the
        start and end vertex `endpoints` of the interface.
        """
        if not redirect:
            return self.category_index(Category.INTERFACE, i, bfID)
        if not 0 <= bfID <= 2 * size_plus - 2:
            raise IndexRangeError('interface function %d out of range (%d functions)'
                    % (bfID, 2 * size_plus - 1))
        k0, k1 = int(kinks[0]), int(kinks[1])
        v0, v1 = endpoints
        bvtx = Category.BOUNDARY_VERTEX
        if bfID == 0:
            return self.category_index(bvtx, v0, 0)
        elif bfID == size_plus:
            return self.category_index(bvtx, v0, 1)
        elif bfID == size_plus - 1:
            return self.category_index(bvtx, v1, 0)
        elif bfID == 2 * size_plus - 2:
            return self.category_index(bvtx, v1, 1)
        elif bfID == 1 and k0:
            return self.category_index(bvtx, v0, 2)
        elif bfID == size_plus - 2 and k1:
            return self.category_index(bvtx, v1, 2)

        if bfID < size_plus - (1 + k1):
            shift = 1 + k0
        else:
            shift = 3 + k0 + k1
        return self.category_index(Category.INTERFACE, i, bfID - shift)

    def boundary_edge_row(self, b, bfID, split=None):
        """Row of the boundary edge function `bfID` of boundary edge `b`.

        Functions with index below `split` are boundary edge functions, the
        remaining ones are free edge functions. If `split` is `None`, all of
        them are boundary edge functions.
        """
        if split is None or bfID < split:
            return self.category_index(Category.BOUNDARY_EDGE, b, bfID)
        else:
            return self.category_index(Category.EDGE, b, bfID - split)

    def vertex_row(self, v, bfID, kind, num_free):
        """Row of the vertex function `bfID` of vertex `v`.

        Interior vertices have only free functions; for other vertices, the
        first `num_free` functions are free and the rest are boundary functions.
        """
        if kind == VertexKind.INTERIOR or bfID < num_free:
            return self.category_index(Category.VERTEX, v, bfID)
        else:
            return self.category_index(Category.BOUNDARY_VERTEX, v, bfID - num_free)
