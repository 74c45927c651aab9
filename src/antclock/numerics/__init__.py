from .stencils import derivative, laplacian, forward_difference, sample_at

__all__ = ['derivative', 'laplacian', 'forward_difference', 'sample_at']
