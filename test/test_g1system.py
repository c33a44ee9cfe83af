from pyg1.g1system import *

import warnings
import numpy as np
import scipy.sparse
import pytest
from pyg1 import bspline
from pyg1.offsets import Category, IndexRangeError
from pyg1.policy import TopologyPolicy, VertexKind
from pyg1.reconstruct import sum_contributions
from pyg1.topology import ConfigurationError, PatchMesh, side_indices
from conftest import kinked_patches
from pyg1.transform import NotFinalizedError

N = 6       # local functions per direction for p=2, n=4

def _c(*idx):
    # coefficients of a 6x6 basis which are 1 at the local positions (j,i)
    c = np.zeros((N, N))
    for (j, i) in idx:
        c[j, i] = 1.0
    return c.ravel()

def _edge(kvs, side, layer, pos):
    c = np.zeros(N * N)
    c[side_indices(kvs, side, layer)[pos]] = 1.0
    return c

def two_patch_functions(mesh):
    """Synthetic G1 functions for two unit squares side by side.

    All free functions have a coefficient which no other free function
    uses, and the traces of both patches on the interface only come from
    the symmetric "plus" functions.
    """
    funcs = []
    # interface: plus functions k, minus functions 6+m
    for k in range(6):
        funcs.append(('interface', [_c((k, 5)), _c((k, 0))], 0, k))
    for m in range(5):
        funcs.append(('interface', [_c((m+1, 4)), _c((m+1, 1))], 0, 6 + m))
    # boundary edges: two boundary functions on the side, two free ones inside
    for b, (p, side) in enumerate(mesh.boundary_list()):
        kvs = mesh.kvs()[p]
        for k in range(4):
            layer, pos = divmod(k, 2)
            funcs.append(('boundary', _edge(kvs, side, layer, 2 + pos), b, k))
    # corner vertices: one free function, three boundary functions; the
    # boundary functions of the interface vertices come from the interface
    corners = {0: ((1,1), (0,0), (0,1), (1,0)),
               2: ((4,1), (5,0), (5,1), (4,0)),
               4: ((1,4), (0,5), (0,4), (1,5)),
               5: ((4,4), (5,5), (5,4), (4,5))}
    for v, idx in corners.items():
        for k, ji in enumerate(idx):
            funcs.append(('vertex', [_c(ji)], v, k))
    return funcs

def _insert(S, funcs):
    for (kind, f, e, k) in funcs:
        if kind == 'interface':
            S.insert_interface_edge(f, e, k)
        elif kind == 'boundary':
            S.insert_boundary_edge(f, e, k)
        else:
            S.insert_vertex(f, e, k)

def two_patch_system(square_mesh, g1=None, order=None):
    M = square_mesh(2, 1, p=2, n=4)
    S = G1System(M, two_patch=True)
    funcs = two_patch_functions(M)
    if order is not None:
        funcs = [funcs[k] for k in order]
    _insert(S, funcs)
    with warnings.catch_warnings():
        warnings.simplefilter('error', RuntimeWarning)
        S.finalize(g1)
    return S


def test_two_patch_sizes(square_mesh):
    S = G1System(square_mesh(2, 1, p=2, n=4), two_patch=True)
    assert S.num_interface_functions().size == 2*(2-0-1)*(4-1) + 2*2 + 1 - 4
    E = S.num_boundary_edge_functions()
    assert len(E) == 6
    assert all(E.count(b) == N - 4 for b in range(6))
    assert S.num_edge_functions().size == 12
    assert S.num_vertex_functions().size == 4
    assert S.num_boundary_vertex_functions().size == 16
    assert S.num_basis_functions().size == 72
    assert S.num_basis_functions_interface() is S.num_basis_functions()
    assert (S.dim_G1_Dofs, S.dim_G1_Bdy, S.dim_K) == (23, 28, 72)
    assert S.boundary_size() == 28
    assert S.size_plus_interface(0) == 6
    assert S.size_plus_boundary(3) == 2
    assert S.kinks(0) == (False, False)
    B, IFB = VertexKind.BOUNDARY, VertexKind.INTERFACE_BOUNDARY
    assert S.kind_of_vertex() == [B, IFB, B, IFB, B, B]

def test_two_patch_zero_solution(square_mesh):
    S = two_patch_system(square_mesh)
    assert S.D.shape == (123, 72)
    K = scipy.sparse.identity(72, format='csr')
    x = S.solve(K, np.zeros(72))
    assert x.shape == (123,)
    assert np.allclose(x, 0)
    fields = sum_contributions(S.construct_solution(x))
    assert len(fields) == 2
    for u in fields:
        assert np.allclose(u.coeffs, 0)

def test_row_completeness(square_mesh):
    S = two_patch_system(square_mesh)
    D = S.D
    nnz_per_row = np.diff(D.indptr)
    assert np.all(nnz_per_row[:S.layout.interior_start] > 0)
    for c in range(5):
        assert len(S.transform.empty_rows(c)) == 0
    # 4 interior functions per patch are two layers away from all sides
    assert nnz_per_row[S.layout.interior_start:].sum() == 8

def test_selectors(square_mesh):
    S = two_patch_system(square_mesh)
    T = S.transform
    lo, hi = S.layout.boundary_range
    sel = (T.B_free + T.B_boundary).toarray()
    assert np.allclose(sel, np.eye(S.layout.total))
    free_rows = set(np.flatnonzero(np.diff(S.D0.indptr)))
    bdy_rows = set(np.flatnonzero(np.diff(S.Dboundary.indptr)))
    assert not (free_rows & bdy_rows)
    assert all(lo <= r < hi for r in bdy_rows)
    assert np.allclose((S.D0 + S.Dboundary).toarray(), S.D.toarray())

def test_insertion_order(square_mesh):
    S1 = two_patch_system(square_mesh)
    num = len(two_patch_functions(S1.mesh))
    order = np.random.RandomState(42).permutation(num)
    S2 = two_patch_system(square_mesh, order=order)
    S3 = two_patch_system(square_mesh, order=order[::-1])
    for S in (S2, S3):
        assert np.array_equal(S.D.indptr, S1.D.indptr)
        assert np.array_equal(S.D.indices, S1.D.indices)
        assert np.array_equal(S.D.data, S1.D.data)

def test_redirected_rows(square_mesh):
    S = two_patch_system(square_mesh)
    bvtx = S.layout[Category.BOUNDARY_VERTEX]
    # first plus function lives on the start vertex of the interface
    u = S.get_single_basis(bvtx.index(1, 0), 0)
    assert np.allclose(u.coeffs.ravel(), _c((0, 5)))
    u = S.get_single_basis(bvtx.index(3, 1), 1)
    assert np.allclose(u.coeffs.ravel(), _c((5, 1)))
    # boundary function 0 is the first function of the first boundary edge
    kvs = S.kvs[0]
    u = S.get_single_boundary_basis(0, 0)
    assert np.allclose(u.coeffs.ravel(), _edge(kvs, 0, 0, 2))
    assert np.allclose(S.get_single_interface_basis(3, 0).coeffs,
                       S.get_single_basis(3, 0).coeffs)

def _random_spd(n, rng):
    X = scipy.sparse.csr_matrix(rng.rand(n, n) * (rng.rand(n, n) < 0.05))
    return (X @ X.T + scipy.sparse.identity(n)).tocsr()

def test_solve(square_mesh):
    rng = np.random.RandomState(1)
    g1 = rng.rand(28)
    S = two_patch_system(square_mesh, g1=g1)
    K = _random_spd(72, rng)
    f = rng.rand(72)
    A, F = S.reduced_system(K, f)
    assert A.shape == (123, 123) and F.shape == (123,)
    assert np.allclose(F, S.D0 @ f - S.D0 @ K @ S.Dboundary.T @ S.g1)
    for solver in ('direct', 'cg'):
        x = S.solve(K, f, solver=solver)
        active = S.transform.active_rows
        assert len(active) == 23 + 8
        assert np.allclose(A[active][:, active] @ x[active], F[active])
        inactive = np.setdiff1d(np.arange(123), active)
        assert np.all(x[inactive] == 0)

def test_continuity(square_mesh):
    rng = np.random.RandomState(2)
    S = two_patch_system(square_mesh, g1=rng.rand(28))
    x = S.solve(_random_spd(72, rng), rng.rand(72))
    uA, uB = sum_contributions(S.construct_solution(x))
    t = np.linspace(0, 1, 11)
    assert np.allclose(uA.grid_eval((t, [1.0])), uB.grid_eval((t, [0.0])))
    # the individual contributions are not all trivial
    contribs = S.construct_solution(x, progress=False)
    assert len(contribs[0]) > 1 and len(contribs[1]) > 1

def test_sparse_solution(square_mesh):
    rng = np.random.RandomState(3)
    g1 = rng.rand(28)
    S = two_patch_system(square_mesh, g1=g1)
    x = S.solve(scipy.sparse.identity(72, format='csr'), rng.rand(72))
    X = S.construct_sparse_solution(x)
    assert X.shape == (23 + 28 + 1, 72)
    # row scaling: free rows by x, boundary rows by g1
    assert np.allclose(X[5].toarray().ravel(), x[5] * S.D[5].toarray().ravel())
    assert np.allclose(X[30].toarray().ravel(), g1[30 - 23] * S.D[30].toarray().ravel())
    assert np.allclose(X[-1].toarray().ravel(), x[51:])
    w = x.copy()
    w[23:51] = g1
    coeffs = np.asarray(X.sum(axis=0)).ravel()
    assert np.allclose(coeffs, S.D.T @ w)
    # both reconstructions agree
    uA, uB = sum_contributions(S.construct_solution(x))
    assert np.allclose(coeffs, np.concatenate((uA.coeffs.ravel(), uB.coeffs.ravel())))

def test_one_patch_round_trip(square_mesh):
    M = square_mesh(1, 1)
    M.remove_boundary([(0, b) for b in range(4)])
    S = G1System(M)
    assert (S.dim_G1_Dofs, S.dim_G1_Bdy) == (0, 0)
    S.finalize()
    n = S.dim_K
    assert np.allclose(S.D.toarray(), np.eye(n))
    rng = np.random.RandomState(4)
    K = _random_spd(n, rng)
    f = rng.rand(n)
    A, F = S.reduced_system(K, f)
    assert np.allclose(A.toarray(), K.toarray())
    assert np.allclose(F, f)
    x = S.solve(K, f)
    assert np.allclose(K @ x, f)
    (u,) = sum_contributions(S.construct_solution(x))
    assert np.allclose(u.coeffs.ravel(), x)

def test_general_four_patch(square_mesh, capsys):
    M = square_mesh(2, 2, p=3, n=4)
    S = G1System(M, verbose=True)
    out = capsys.readouterr().out
    assert 'dim_G1_Dofs = 50' in out
    assert 'interface:' in out and '[0, ' in out and 'int64' not in out
    assert (S.dim_G1_Dofs, S.dim_G1_Bdy, S.dim_K) == (50, 56, 196)
    assert S.kind_of_vertex().count(VertexKind.INTERIOR) == 1
    # no G1 functions inserted
    with pytest.warns(RuntimeWarning):
        S.finalize()
    assert 'nnz' in capsys.readouterr().out
    # 3x3 interior functions per patch
    assert S.D.nnz == 4 * 9
    assert len(S.transform.active_rows) == 36

def test_kinked_two_patch():
    M = PatchMesh(kinked_patches())
    S = G1System(M, two_patch=True)
    assert S.kinks(0) == (True, False)
    # the kink removes one interface function and adds a boundary function
    # to the start vertex of the interface
    assert S.num_interface_functions().size == 6
    assert S.num_boundary_vertex_functions().count(1) == 3
    assert (S.dim_G1_Dofs, S.dim_G1_Bdy, S.dim_K) == (22, 29, 72)
    _insert(S, two_patch_functions(M))
    with warnings.catch_warnings():
        warnings.simplefilter('error', RuntimeWarning)
        S.finalize()
    assert np.all(np.diff(S.D.indptr)[:S.layout.interior_start] > 0)

    bvtx = S.layout[Category.BOUNDARY_VERTEX]
    intf = S.layout[Category.INTERFACE]
    v0, v1 = S.classification.endpoints[0]
    # plus function 1 next to the kink is a boundary function of the start vertex
    assert np.allclose(S.get_single_basis(bvtx.index(v0, 2), 0).coeffs.ravel(), _c((1, 5)))
    assert np.allclose(S.get_single_basis(bvtx.index(v0, 2), 1).coeffs.ravel(), _c((1, 0)))
    assert np.allclose(S.get_single_basis(bvtx.index(v0, 1), 0).coeffs.ravel(), _c((1, 4)))
    assert np.allclose(S.get_single_basis(bvtx.index(v1, 0), 0).coeffs.ravel(), _c((5, 5)))
    # the remaining interface functions are shifted past the redirected ones
    assert np.allclose(S.get_single_basis(intf.index(0, 0), 0).coeffs.ravel(), _c((2, 5)))
    assert np.allclose(S.get_single_basis(intf.index(0, 2), 0).coeffs.ravel(), _c((4, 5)))
    assert np.allclose(S.get_single_basis(intf.index(0, 3), 0).coeffs.ravel(), _c((2, 4)))
    assert np.allclose(S.get_single_basis(intf.index(0, 5), 1).coeffs.ravel(), _c((4, 1)))

def _unit(k, n=49):
    c = np.zeros(n)
    c[k] = 1.0
    return c

def test_general_insertion(square_mesh):
    S = G1System(square_mesh(2, 2, p=3, n=4))
    kinds = S.kind_of_vertex()
    vi = kinds.index(VertexKind.INTERIOR)
    vb = kinds.index(VertexKind.BOUNDARY)
    info = S.classification.vertices[vi]
    assert len(info.corners) == 4
    for k in range(6):
        S.insert_vertex([_unit(10 + k)] * 4, vi, k)
    with pytest.raises(IndexRangeError):
        S.insert_vertex([_unit(0)] * 4, vi, 6)
    # boundary vertex: one free function, then six boundary functions
    S.insert_vertex([_unit(0)], vb, 0)
    S.insert_vertex([_unit(1)], vb, 3)
    # boundary edge: size_plus - 6 = 1 boundary function, then two edge functions
    assert S.size_plus_boundary(0) == 7
    for k in range(3):
        S.insert_boundary_edge(_unit(2 + k), 0, k)
    with pytest.raises(IndexRangeError):
        S.insert_boundary_edge(_unit(5), 0, 3)
    # without redirection, interface functions are numbered consecutively
    num = S.num_interface_functions().count(0)
    S.insert_interface_edge([_unit(20), _unit(21)], 0, 2)
    with pytest.raises(IndexRangeError):
        S.insert_interface_edge([_unit(20), _unit(21)], 0, num)
    with pytest.warns(RuntimeWarning):
        S.finalize()

    L, D = S.layout, S.D
    vtx = L[Category.VERTEX]
    for k in range(6):
        row = vtx.index(vi, k)
        assert D[row].nnz == 4
        for pc in info.corners:
            assert D[row, L.column(pc.patch, 10 + k)] == 1.0
    p = S.classification.vertices[vb].corners[0].patch
    assert D[vtx.index(vb, 0), L.column(p, 0)] == 1.0
    assert D[L[Category.BOUNDARY_VERTEX].index(vb, 2), L.column(p, 1)] == 1.0
    p = S.mesh.boundary_list()[0].patch
    assert D[L[Category.BOUNDARY_EDGE].index(0, 0), L.column(p, 2)] == 1.0
    assert D[L[Category.EDGE].index(0, 0), L.column(p, 3)] == 1.0
    assert D[L[Category.EDGE].index(0, 1), L.column(p, 4)] == 1.0
    intf = S.mesh.interface_list()[0]
    row = L[Category.INTERFACE].index(0, 2)
    assert D[row, L.column(intf.first.patch, 20)] == 1.0
    assert D[row, L.column(intf.second.patch, 21)] == 1.0
    # the boundary functions are not part of the free system
    assert S.D0[L[Category.BOUNDARY_EDGE].index(0, 0)].nnz == 0
    assert S.D0[vtx.index(vi, 0)].nnz == 4

def test_separate_interface_bases(square_mesh):
    M = square_mesh(2, 1, p=2, n=4)
    kv = bspline.make_knots(2, 0.0, 1.0, 8)
    ikvs = 2 * [(kv, kv)]
    S = G1System(M, two_patch=True, isogeometric=False, interface_kvs=ikvs)
    assert S.dim_K == 72 + 2 * 100
    assert S.num_basis_functions_interface().first == 72
    cA, cB = np.zeros((10, 10)), np.zeros((10, 10))
    cA[3, 9] = cB[3, 0] = 1.0
    S.insert_interface_edge([cA, cB], 0, 2)
    # interface functions live in the interface bases
    with pytest.raises(ValueError):
        S.insert_interface_edge([_c((1, 5)), _c((1, 0))], 0, 3)
    with pytest.warns(RuntimeWarning):
        S.finalize()
    row = 1     # interface function 2 is the second interface row
    assert S.D[row, 72 + 3*10 + 9] == 1.0
    assert S.D[row, 72 + 100 + 3*10] == 1.0
    assert np.allclose(S.get_single_interface_basis(row, 0).coeffs, cA)
    assert np.allclose(S.get_single_basis(row, 0).coeffs, 0)
    x = np.zeros(S.layout.total)
    x[row] = 2.0
    fields = sum_contributions(S.construct_solution(x))
    assert all(len(u) == 2 for u in fields)
    assert np.allclose(fields[1][0].coeffs, 2 * cB)

def test_errors(square_mesh):
    M = square_mesh(2, 1, p=2, n=4)
    with pytest.raises(ConfigurationError):
        G1System(M, isogeometric=False)
    with pytest.raises(ConfigurationError):
        G1System(M, interface_kvs=M.kvs())
    with pytest.raises(TypeError):
        G1System(M, policy=TopologyPolicy(), two_patch=True)

    S = G1System(M, two_patch=True)
    with pytest.raises(NotFinalizedError):
        S.D
    with pytest.raises(NotFinalizedError):
        S.solve(scipy.sparse.identity(72), np.zeros(72))
    with pytest.raises(NotFinalizedError):
        S.construct_solution(np.zeros(123))
    with pytest.raises(NotFinalizedError):
        S.construct_sparse_solution(np.zeros(123))
    # invalid entities and functions
    with pytest.raises(IndexRangeError):
        S.insert_interface_edge([_c((1, 5)), _c((1, 0))], 1, 1)
    with pytest.raises(IndexRangeError):
        S.insert_interface_edge([_c((1, 5)), _c((1, 0))], 0, 11)
    with pytest.raises(IndexRangeError):
        S.insert_boundary_edge(_c((0, 2)), -1, 0)
    with pytest.raises(IndexRangeError):
        S.insert_vertex([_c((1, 1))], 6, 0)
    with pytest.raises(IndexRangeError):
        S.insert_vertex([_c((1, 1))], 0, 4)
    with pytest.raises(ValueError):
        S.insert_interface_edge([_c((1, 5))], 0, 1)
    with pytest.raises(ValueError):
        S.insert_boundary_edge(np.zeros(35), 0, 0)
    assert S._builder.nnz == 0

    _insert(S, two_patch_functions(M))
    S.finalize()
    with pytest.raises(RuntimeError):
        S.finalize()
    with pytest.raises(RuntimeError):
        S.insert_vertex([_c((1, 1))], 0, 0)
    with pytest.raises(ValueError):
        S.reduced_system(scipy.sparse.identity(71), np.zeros(71))
    with pytest.raises(ValueError):
        S.reduced_system(scipy.sparse.identity(72), np.zeros(71))
    with pytest.raises(ValueError):
        S.construct_solution(np.zeros(23))
    with pytest.raises(IndexRangeError):
        S.get_single_boundary_basis(28, 0)
