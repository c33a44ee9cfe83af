"""Mode-k products of matrices with full tensors.

A tensor is simply represented as a :class:`numpy.ndarray`. The only operation
needed for tensor product splines is the application of one (possibly sparse)
matrix per axis, see :func:`apply_tprod`.
"""
import numpy as np


def _modek_dot(B, X, k):
    # like np.tensordot(B, X, axes=([1],[k])) with the new axis first, but
    # also for sparse B
    assert X.shape[k] == B.shape[1], 'operator has wrong size for axis %d' % k
    Xk = np.moveaxis(X, k, 0)
    Y = np.asarray(B.dot(Xk.reshape((Xk.shape[0], -1))))
    return Y.reshape((B.shape[0],) + Xk.shape[1:])

def apply_tprod(ops, A):
    """Apply the Kronecker product ``ops[0] x ... x ops[-1]`` to the tensor `A`.

    Args:
        ops (seq): dense or sparse matrices, one per leading axis of `A`;
            ``None`` stands for the identity
        A (ndarray): tensor whose leading axes match the operators; trailing
            axes are carried along

    Returns:
        ndarray: the result, with the same number of axes as `A`
    """
    n = len(ops)
    # each step consumes the last operator axis and prepends the result axis
    for op in reversed(ops):
        if op is None:
            A = np.moveaxis(A, n-1, 0)
        elif isinstance(op, np.ndarray):
            A = np.tensordot(op, A, axes=([1], [n-1]))
        else:
            A = _modek_dot(op, A, n-1)
    return A
