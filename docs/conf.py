import os
import sys

# Make the package importable without installing
sys.path.insert(0, os.path.abspath(".."))

project   = "segmented"
copyright = "2026, segmented contributors"
author    = "segmented contributors"

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.napoleon",       # NumPy docstring sections (Parameters, Raises)
    "sphinx.ext.mathjax",        # model equations in estimator docstrings
    "sphinx_autodoc_typehints",
    "sphinx_copybutton",
]

html_theme = "sphinx_rtd_theme"

autodoc_member_order    = "bysource"
autodoc_typehints       = "description"
always_document_param_types = True

napoleon_numpy_docstring = True
napoleon_google_docstring = False
napoleon_use_param  = True
napoleon_use_rtype  = False
