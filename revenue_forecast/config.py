"""Configuration management using Pydantic v2 models.

This module provides the configuration classes for revenue forecasting
runs: per-status payment probabilities and the execution parameters of
the incremental runner. The models validate their inputs and can be
composed into a single :class:`ForecastConfig` loaded from YAML.

Examples:
    Basic configuration setup::

        from revenue_forecast.config import ForecastConfig, ProbabilityMap, SimulationConfig

        config = ForecastConfig(
            probabilities=ProbabilityMap(pending=0.6, approved=0.95, denied=0.05),
            simulation=SimulationConfig(n_iterations=5000, chunk_size=250, seed=7),
        )

    Loading from file::

        config = ForecastConfig.from_yaml(Path("forecast.yaml"))

Note:
    Probabilities are expressed as decimals (0.1 = 10%) and are supplied by
    the caller; no calibration is performed here.
"""

import math
from numbers import Real
from pathlib import Path
from typing import Any, Dict, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
import yaml

from .claims import PaymentStatus


class ProbabilityMap(BaseModel):
    """Probability that a claim in each status ends up paid.

    Attributes:
        pending: Payment probability for pending claims.
        approved: Payment probability for approved claims.
        denied: Payment probability for denied claims.

    Examples:
        Field names and the capitalised status names are both accepted::

            ProbabilityMap(pending=0.5, approved=0.9, denied=0.1)
            ProbabilityMap.model_validate({"Pending": 0.5, "Approved": 0.9, "Denied": 0.1})
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    pending: float = Field(default=0.5, ge=0, le=1, alias="Pending")
    approved: float = Field(default=0.5, ge=0, le=1, alias="Approved")
    denied: float = Field(default=0.5, ge=0, le=1, alias="Denied")

    def as_mapping(self) -> Dict[PaymentStatus, float]:
        """Return the probabilities keyed by :class:`PaymentStatus`."""
        return {
            PaymentStatus.PENDING: self.pending,
            PaymentStatus.APPROVED: self.approved,
            PaymentStatus.DENIED: self.denied,
        }


ProbabilityInput = Union[ProbabilityMap, Mapping[Any, float]]


def _coerce_status(key: Any) -> PaymentStatus:
    if isinstance(key, PaymentStatus):
        return key
    if isinstance(key, str):
        for status in PaymentStatus:
            if key.lower() in (status.value.lower(), status.name.lower()):
                return status
    raise ValueError(f"Unknown payment status in probability map: {key!r}")


def normalize_probabilities(probabilities: ProbabilityInput) -> Dict[PaymentStatus, float]:
    """Convert a probability map into a ``{PaymentStatus: float}`` dictionary.

    Plain mappings may be keyed by :class:`PaymentStatus` members, their
    values (``"Pending"``) or their names in any case. Statuses missing
    from a plain mapping stay missing; the sampler reports them only when
    a claim with that status is drawn.

    Args:
        probabilities: A :class:`ProbabilityMap` or a plain mapping.

    Returns:
        Dictionary of probabilities keyed by status.

    Raises:
        ValueError: If a key is not a known status or a value is not a
            number in [0, 1].
    """
    if isinstance(probabilities, ProbabilityMap):
        return probabilities.as_mapping()

    normalized: Dict[PaymentStatus, float] = {}
    for key, value in probabilities.items():
        status = _coerce_status(key)
        if isinstance(value, bool) or not isinstance(value, Real) or math.isnan(value):
            raise ValueError(f"Probability for {status.value} must be a number, got {value!r}")
        if not 0.0 <= value <= 1.0:
            raise ValueError(f"Probability for {status.value} must be in [0, 1], got {value}")
        normalized[status] = float(value)
    return normalized


class SimulationConfig(BaseModel):
    """Execution parameters for a forecast run.

    Attributes:
        n_iterations: Number of Monte Carlo trials. Zero is allowed and
            produces the degenerate empty result.
        chunk_size: Trials executed per scheduling slice before control is
            handed back to the host.
        seed: Optional seed for reproducible runs.
        backend: Where background runs execute: ``"cooperative"`` on an
            asyncio event loop, ``"thread"`` on a worker thread or
            ``"process"`` in a worker process.
        progress_bar: Show a tqdm progress bar during blocking runs.
    """

    n_iterations: int = Field(default=2000, ge=0, description="Number of Monte Carlo trials")
    chunk_size: int = Field(default=200, gt=0, description="Trials per scheduling slice")
    seed: Optional[int] = Field(default=None, ge=0, description="Random seed")
    backend: Literal["cooperative", "thread", "process"] = Field(
        default="thread", description="Execution backend for background runs"
    )
    progress_bar: bool = Field(default=False, description="Show a console progress bar")


class ForecastConfig(BaseModel):
    """Complete configuration for a revenue forecast.

    Attributes:
        probabilities: Payment probability per claim status.
        simulation: Execution parameters.
    """

    probabilities: ProbabilityMap = Field(default_factory=ProbabilityMap)
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> "ForecastConfig":
        """Read a forecast configuration from a YAML document.

        An empty document yields the defaults. Top-level keys starting with
        an underscore are skipped so they can hold YAML anchors.

        Raises:
            FileNotFoundError: If ``path`` is not a file.
            ValueError: If the document's top level is not a mapping.
            ValidationError: If a value is out of range.
        """
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"Forecast configuration not found: {path}")

        document = yaml.safe_load(path.read_text(encoding="utf-8"))
        if document is None:
            document = {}
        if not isinstance(document, dict):
            raise ValueError(
                f"Forecast configuration {path} must be a mapping, "
                f"got {type(document).__name__}"
            )

        return cls.model_validate(
            {key: value for key, value in document.items() if not str(key).startswith("_")}
        )

    @classmethod
    def from_dict(
        cls, data: Dict[str, Any], base_config: Optional["ForecastConfig"] = None
    ) -> "ForecastConfig":
        """Create config from dictionary, optionally overriding base config.

        Args:
            data: Dictionary with configuration parameters.
            base_config: Optional base configuration to override.

        Returns:
            ForecastConfig object with validated parameters.
        """
        if base_config is None:
            return cls(**data)

        def deep_merge(base: dict, override: dict) -> dict:
            result = base.copy()
            for key, value in override.items():
                if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                    result[key] = deep_merge(result[key], value)
                else:
                    result[key] = value
            return result

        return cls(**deep_merge(base_config.model_dump(), data))
