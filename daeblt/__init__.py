"""
daeblt - Structural BLT analysis of classified DAE models

Matches equations to the unknowns they determine, sorts them into Block
Lower Triangular form and reports algebraic loops and structural
singularities.
"""

from beartype.claw import beartype_package

beartype_package(__name__)

__version__ = "0.1.0"

from . import ir
from . import analysis
from .analysis import analyze

__all__ = ["ir", "analysis", "analyze", "__version__"]
