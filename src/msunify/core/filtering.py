"""
Peak filtering applied by decoders.

Filtering keeps peaks in their original order. With windows configured
the m/z range of each scan is cut into equal windows and the top-N cap
is applied per window.
"""

import math

import numpy as np
from numpy.typing import NDArray

from .spectrum import Spectrum
from ..config import FilteringParams


def _top_n_mask(intensity: NDArray[np.float64], n: int) -> NDArray[np.bool_]:
    """Boolean mask of the n most intense peaks (stable on ties)."""
    mask = np.zeros(len(intensity), dtype=bool)
    if len(intensity) <= n:
        mask[:] = True
        return mask
    order = np.argsort(-intensity, kind='stable')
    mask[order[:n]] = True
    return mask


def _window_indices(mz: NDArray[np.float64], params: FilteringParams) -> NDArray[np.int64]:
    """Window index of every peak."""
    mz_min = float(mz.min())
    mz_span = float(mz.max()) - mz_min
    if params.number_of_windows is not None:
        n_windows = params.number_of_windows
        width = mz_span / n_windows if mz_span > 0 else 1.0
    else:
        width = params.window_width_thomsons
        n_windows = max(1, math.ceil(mz_span / width)) if mz_span > 0 else 1
    idx = np.floor((mz - mz_min) / width).astype(np.int64)
    return np.clip(idx, 0, n_windows - 1)


def filter_peaks(spectrum: Spectrum, params: FilteringParams) -> Spectrum:
    """
    Apply peak filtering to one spectrum.

    Args:
        spectrum: Spectrum to filter.
        params: Filtering configuration.

    Returns:
        A new Spectrum with the surviving peaks, or the input itself when
        the parameters do not apply to its MS level or it has no peaks.

    Example:
        >>> params = FilteringParams(min_ratio=0.5)
        >>> filter_peaks(spectrum, params).n_points
    """
    if not params.applies_to(spectrum.ms_level) or spectrum.is_empty:
        return spectrum

    intensity = spectrum.intensity
    keep = np.ones(len(intensity), dtype=bool)

    if params.min_ratio is not None:
        keep &= intensity >= params.min_ratio * float(intensity.max())

    if params.max_peaks_per_scan is not None:
        windowed = params.number_of_windows is not None or params.window_width_thomsons is not None
        if windowed:
            windows = _window_indices(spectrum.mz, params)
            capped = np.zeros(len(intensity), dtype=bool)
            for window in np.unique(windows[keep]):
                members = np.flatnonzero(keep & (windows == window))
                window_mask = _top_n_mask(intensity[members], params.max_peaks_per_scan)
                capped[members[window_mask]] = True
            keep = capped
        else:
            members = np.flatnonzero(keep)
            capped = np.zeros(len(intensity), dtype=bool)
            capped[members[_top_n_mask(intensity[members], params.max_peaks_per_scan)]] = True
            keep = capped

    if keep.all():
        return spectrum
    return spectrum.with_peaks(spectrum.mz[keep], intensity[keep])
