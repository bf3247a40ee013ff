from .poisson import PoissonITS, ITSResult

__all__ = ["PoissonITS", "ITSResult"]
