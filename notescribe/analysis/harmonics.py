"""Harmonic rejection for per-frame candidate lists."""

from typing import Dict, Optional

import numpy as np

from ..core.config import DetectionParams


def rejection_tolerance_cents(strength: float, params: Optional[DetectionParams] = None) -> float:
    """Cents tolerance around each integer ratio: 20 + (1 - strength) * 80."""
    params = params or DetectionParams()
    strength = float(np.clip(strength, 0.0, 1.0))
    return params.rejection_base_cents + (1.0 - strength) * params.rejection_span_cents


def reject_harmonics(
    candidates: Dict[int, float],
    strength: float,
    params: Optional[DetectionParams] = None,
) -> Dict[int, float]:
    """
    Drop candidates that sit at a harmonic ratio above a lower accepted one.

    Candidates are visited in ascending pitch. A candidate whose interval
    above any already-accepted candidate is within the tolerance of
    1200*log2(k) cents for k in 2..6 is an overtone image and is discarded.
    A strength of 0 disables rejection.

    Args:
        candidates: Mapping of MIDI pitch to detection strength
        strength: Rejection strength in [0, 1]
        params: Detection constants

    Returns:
        Surviving candidates
    """
    if not candidates or strength <= 0:
        return dict(candidates)

    params = params or DetectionParams()
    tolerance = rejection_tolerance_cents(strength, params)
    ratio_cents = [1200.0 * np.log2(k) for k in params.rejection_ratios]

    accepted: Dict[int, float] = {}
    for pitch in sorted(candidates):
        is_harmonic = False
        for lower in accepted:
            interval = (pitch - lower) * 100.0
            if any(abs(interval - cents) <= tolerance for cents in ratio_cents):
                is_harmonic = True
                break
        if not is_harmonic:
            accepted[pitch] = candidates[pitch]
    return accepted
