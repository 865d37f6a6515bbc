from typing import Optional


class TreeGRNError(Exception):
    """Base class for every error raised by the inference engine."""


class InvalidParameterError(TreeGRNError, ValueError):
    """An input or configuration value was rejected before any task ran."""

    def __init__(self, parameter: str, message: str) -> None:
        super().__init__(f"Invalid value for {parameter}: {message}")
        self.parameter = parameter


class InvalidTargetError(TreeGRNError, ValueError):
    def __init__(self, target_gene: object) -> None:
        super().__init__(f"Target gene {target_gene!r} is not a row of the expression matrix")
        self.target_gene = target_gene


class EmptyPredictorSetError(TreeGRNError, ValueError):
    def __init__(self, target_gene: object) -> None:
        super().__init__(
            f"Target gene {target_gene!r} has no candidate regulators left once it is excluded from its own predictors"
        )
        self.target_gene = target_gene


class TaskFailedError(TreeGRNError, RuntimeError):
    """The ensemble trainer failed for one target gene; the whole run is aborted."""

    def __init__(self, target_gene: object, reason: Optional[BaseException] = None) -> None:
        detail = f": {type(reason).__name__}: {reason}" if reason is not None else ""
        super().__init__(f"Importance computation failed for target gene {target_gene!r}{detail}")
        self.target_gene = target_gene
        self.reason = reason

    def __reduce__(self):
        # keep target_gene and reason when crossing a worker process boundary
        return (self.__class__, (self.target_gene, self.reason))


class InvalidRankingParameterError(TreeGRNError, ValueError):
    pass
