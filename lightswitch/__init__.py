"""Processing, kernel symbolization, folding and pprof encoding of sampled CPU profiles."""

__version__ = "0.1.0"