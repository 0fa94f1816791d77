"""Error kinds raised by the attrition pipeline stages."""
from __future__ import annotations

from typing import Optional


class AttritionModelError(ValueError):
    """Base class for every pipeline failure."""


class SchemaError(AttritionModelError):
    def __init__(self, column: str, detail: Optional[str] = None) -> None:
        self.column = column
        message = f"Column '{column}' is missing from the table"
        if detail:
            message = f"Column '{column}': {detail}"
        super().__init__(message)


class SingularMatrixError(AttritionModelError):
    def __init__(self, predictor: str, detail: Optional[str] = None) -> None:
        self.predictor = predictor
        super().__init__(
            detail or f"Predictor '{predictor}' is an exact linear combination of the preceding columns"
        )


class ConvergenceError(AttritionModelError):
    def __init__(self, iterations: int, tolerance: float) -> None:
        self.iterations = iterations
        self.tolerance = tolerance
        super().__init__(
            f"Maximum-likelihood fit did not converge within {iterations} iterations (tol={tolerance:g})"
        )


class EmptyPartitionError(AttritionModelError):
    def __init__(self, partition: str, detail: Optional[str] = None) -> None:
        self.partition = partition
        super().__init__(
            detail or f"The {partition} partition does not contain both label classes"
        )
