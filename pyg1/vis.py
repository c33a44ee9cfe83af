"""Visualization functions."""
import numpy as np
import matplotlib.pyplot as plt

from . import utils

def _field_values(field, grd):
    # a field may be given as a list of contributions over different bases
    if isinstance(field, (list, tuple)):
        return sum(utils.grid_eval(f, grd) for f in field)
    return utils.grid_eval(field, grd)

def _support(field):
    if isinstance(field, (list, tuple)):
        field = field[0]
    return field.support

def plot_field(field, geo=None, res=80, contour=False, **kwargs):
    """Plot a scalar field, optionally over a geometry.

    `field` may also be a list of functions, which are summed up.
    """
    if not contour:
        kwargs.setdefault('shading', 'gouraud')
    if np.isscalar(res):
        res = (res, res)
    if geo is not None:
        grd = tuple(np.linspace(s[0], s[1], r) for (s,r) in zip(geo.support, res))
        XY = utils.grid_eval(geo, grd)
        C = _field_values(field, grd)
        if contour:
            return plt.contourf(XY[...,0], XY[...,1], C, **kwargs)
        else:
            return plt.pcolormesh(XY[...,0], XY[...,1], C, **kwargs)
    else:
        # assumes that `field` is a BSplineFunc or equivalent
        grd = tuple(np.linspace(s[0], s[1], r) for (s,r) in zip(_support(field), res))
        C = _field_values(field, grd)
        if contour:
            return plt.contourf(grd[1], grd[0], C, **kwargs)
        else:
            return plt.pcolormesh(grd[1], grd[0], C, **kwargs)

def plot_multipatch_field(fields, geos, res=80, contour=False, **kwargs):
    """Plot one scalar field per patch over the patch geometries `geos`,
    using a common color scale.

    The entries of `fields` are functions or lists of functions, as produced
    by :func:`.reconstruct.sum_contributions`.
    """
    assert len(fields) == len(geos), 'need one field per patch'
    if np.isscalar(res):
        res = (res, res)
    grids = [tuple(np.linspace(s[0], s[1], r) for (s,r) in zip(geo.support, res))
             for geo in geos]
    values = [_field_values(f, grd) for (f, grd) in zip(fields, grids)]
    kwargs.setdefault('vmin', min(C.min() for C in values))
    kwargs.setdefault('vmax', max(C.max() for C in values))
    if not contour:
        kwargs.setdefault('shading', 'gouraud')
    result = []
    for geo, grd, C in zip(geos, grids, values):
        XY = utils.grid_eval(geo, grd)
        if contour:
            result.append(plt.contourf(XY[...,0], XY[...,1], C, **kwargs))
        else:
            result.append(plt.pcolormesh(XY[...,0], XY[...,1], C, **kwargs))
    return result

def plot_geo(geo, grid=10, gridx=None, gridy=None, res=50,
             linewidth=None, color='black', boundary=True, bcolor='black'):
    """Plot a planar curve or a wireframe of a planar patch.

    Args:
        grid: number of parameter lines per direction, or an array of
            parameter values; `gridx`/`gridy` override it per direction
        res (int): number of evaluation points per line
        boundary (bool): draw the outline of the patch in `bcolor` on top
    """
    assert geo.dim == 2, 'can only plot planar geometries'
    if geo.sdim == 1:
        return plot_curve(geo, res=res, linewidth=linewidth, color=color)
    assert geo.sdim == 2, 'can only plot curves and surfaces'
    (sy, sx) = geo.support

    def ticks(g, s):
        if g is None:
            g = grid
        return np.linspace(s[0], s[1], max(g, 2)) if np.isscalar(g) else np.asarray(g)

    def lines(X, **kw):
        for pts in X:
            plt.plot(pts[:,0], pts[:,1], linewidth=linewidth,
                     solid_joinstyle='round', **kw)

    ty, tx = ticks(gridy, sy), ticks(gridx, sx)
    # lines of constant y, then of constant x
    H = utils.grid_eval(geo, (ty, np.linspace(sx[0], sx[1], res)))
    V = utils.grid_eval(geo, (np.linspace(sy[0], sy[1], res), tx)).swapaxes(0, 1)
    lines(H[1:-1], color=color, solid_capstyle='butt', zorder=1)
    lines(V[1:-1], color=color, solid_capstyle='butt', zorder=1)
    if boundary:
        lines([H[0], H[-1], V[0], V[-1]], color=bcolor, solid_capstyle='round', zorder=1000)

def plot_curve(geo, res=50, linewidth=None, color='black'):
    """Plot a 2D curve."""
    assert geo.dim == 2 and geo.sdim == 1, 'Can only plot 2D curves'
    supp = geo.support
    mesh = np.linspace(supp[0][0], supp[0][1], res)
    pts = utils.grid_eval(geo, (mesh,))
    plt.plot(pts[:,0], pts[:,1], color=color, linewidth=linewidth)

def plot_mesh(mesh, res=50, color='black', vertices=True):
    """Plot the patches and the active vertices of a :class:`.PatchMesh`."""
    for geo in mesh.geos():
        plot_geo(geo, grid=2, res=res, color=color, bcolor=color)
    if vertices:
        V = np.array([mesh.vertex_position(k) for k in range(len(mesh.vertex_list()))])
        if len(V):
            plt.scatter(V[:,0], V[:,1], c='red', zorder=2000)
