"""Rating models package.

- build_equations / EquationSystem: games to a weighted sparse linear system
- PriorVectorBuilder: standardized talent + returning production prior
- RidgeRatingSolver: ridge-with-prior solve for ratings and HFA
- LambdaSelector: leave-one-week-out CV of the ridge strength
- RatingBlendOptimizer: guarded blend of two rating sources
"""

from .blend import BlendConfig, BlendResult, RatingBlendOptimizer
from .equations import EquationSystem, build_equations
from .lambda_selection import LambdaSelectionResult, LambdaSelector
from .priors import PriorVector, PriorVectorBuilder
from .ridge import RidgeRatingSolver, RidgeSolution, fit_ridge

__all__ = [
    "BlendConfig",
    "BlendResult",
    "RatingBlendOptimizer",
    "EquationSystem",
    "build_equations",
    "LambdaSelectionResult",
    "LambdaSelector",
    "PriorVector",
    "PriorVectorBuilder",
    "RidgeRatingSolver",
    "RidgeSolution",
    "fit_ridge",
]
