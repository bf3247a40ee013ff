from .its import ITSRefutationReport
from ._check import Assumption, RefutationCheck

__all__ = ["ITSRefutationReport", "Assumption", "RefutationCheck"]
