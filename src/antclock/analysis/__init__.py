from .adaptivity import analyze_adaptivity, residual_improvement_fraction
from .worldline import (extract_worldline, characteristic_scalars, continued_fraction,
                        reconstruct_continued_fraction, cf_reconstruction_error,
                        worldline_signature, worldline_distance, cf_signature_overlap,
                        classify_trajectory)

__all__ = [
    'analyze_adaptivity',
    'residual_improvement_fraction',
    'extract_worldline',
    'characteristic_scalars',
    'continued_fraction',
    'reconstruct_continued_fraction',
    'cf_reconstruction_error',
    'worldline_signature',
    'worldline_distance',
    'cf_signature_overlap',
    'classify_trajectory',
]
