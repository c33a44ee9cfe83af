import numpy as np


def grid_eval(f, grid):
    """Evaluate `f` over the tensor grid `grid` (ZYX order).

    `f` is either an object with a `grid_eval` method, such as a
    :class:`.BSplineFunc`, or a plain function ``f(x, y, ...)`` which is
    called with broadcastable coordinate arrays.
    """
    if hasattr(f, 'grid_eval'):
        return f.grid_eval(grid)
    mesh = np.meshgrid(*grid, sparse=True, indexing='ij')
    values = np.asanyarray(f(*reversed(mesh)))
    shape = tuple(len(g) for g in grid)
    return np.broadcast_to(values, shape + values.shape[len(grid):])


class _DummyPbar:
    """Stand-in for tqdm which only iterates."""
    def __init__(self, iterable=None, *args, **kwargs):
        self.iterable = iterable
    def __iter__(self):
        return iter(self.iterable)
    def __enter__(self):
        return self
    def __exit__(self, *args):
        pass
    def update(self, n=1):
        pass
    def close(self):
        pass

def progress_bar(enable=True):
    """The `tqdm` progress bar class, or a silent replacement if `enable` is false."""
    if enable:
        import tqdm
        return tqdm.tqdm
    return _DummyPbar
