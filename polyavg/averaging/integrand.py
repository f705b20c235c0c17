"""
Integrand adapter: physical model x joint density x Jacobian.

The adapter turns a black-box spectrum model into the flat vector-valued
function the cubature engine integrates over the canonical box. Selected
channels are laid out variable by variable; inside a variable each
wavelength contributes its selected quantities next to each other:

    [cs(w0), cd(w0), cs(w1), cd(w1), ...]   (extinction)
    [cs(w0), cd(w0), ...]                   (absorption)

so that a PAIRED error norm with ``group_size = len(quantities)`` treats the
channels of one wavelength as one correlated error group.
"""

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from polyavg.core.exceptions import DimensionMismatchError, ModelEvaluationError
from polyavg.core.logging_config import get_logger
from polyavg.averaging.weights import WeightRegistry
from polyavg.quadrature.transforms import DomainTransform

logger = get_logger("averaging.integrand")

Channel = Tuple[str, str]  # (quantity, variable), e.g. ("dichroism", "extinction")

FRAME_COLUMNS = ("wavelength", "quantity", "variable", "value")


@dataclass(frozen=True)
class ParameterVector:
    """
    Immutable ordered parameter values, addressable by name.

    Attributes
    ----------
    names : Tuple[str, ...]
        Parameter names in integration order
    values : Tuple[float, ...]
        Physical values
    """

    names: Tuple[str, ...]
    values: Tuple[float, ...]

    def __post_init__(self):
        object.__setattr__(self, "names", tuple(self.names))
        object.__setattr__(self, "values", tuple(float(v) for v in self.values))
        if len(self.names) != len(self.values):
            raise ValueError("names and values must have the same length")

    def __getitem__(self, name: str) -> float:
        try:
            return self.values[self.names.index(name)]
        except ValueError:
            raise KeyError(name) from None

    def __iter__(self):
        return iter(self.names)

    def __len__(self) -> int:
        return len(self.names)

    def __contains__(self, name: str) -> bool:
        return name in self.names

    def keys(self) -> Tuple[str, ...]:
        return self.names

    def items(self):
        return zip(self.names, self.values)

    def as_dict(self) -> Dict[str, float]:
        return dict(zip(self.names, self.values))


@dataclass(frozen=True)
class SpectrumSample:
    """
    One model evaluation: channel values on a shared wavelength grid.

    Attributes
    ----------
    wavelength : np.ndarray
        Wavelength grid, shape (W,)
    channels : Dict[Channel, np.ndarray]
        ``(quantity, variable) -> values``, each of shape (W,)
    """

    wavelength: np.ndarray
    channels: Dict[Channel, np.ndarray] = field(default_factory=dict)

    def __post_init__(self):
        wavelength = np.asarray(self.wavelength, dtype=float)
        if wavelength.ndim != 1:
            raise ValueError("wavelength must be one-dimensional")
        channels = {}
        for tag, values in self.channels.items():
            values = np.asarray(values, dtype=float)
            if values.shape != wavelength.shape:
                raise ValueError(
                    f"Channel {tag} has shape {values.shape}, expected {wavelength.shape}"
                )
            channels[tuple(tag)] = values
        object.__setattr__(self, "wavelength", wavelength)
        object.__setattr__(self, "channels", channels)

    @property
    def quantities(self) -> List[str]:
        return sorted({q for q, _ in self.channels})

    @property
    def variables(self) -> List[str]:
        return sorted({v for _, v in self.channels})

    @classmethod
    def from_frame(cls, frame: pd.DataFrame) -> "SpectrumSample":
        """
        Build from a long-format frame with columns
        ``wavelength, quantity, variable, value``.
        """
        missing = set(FRAME_COLUMNS) - set(frame.columns)
        if missing:
            raise ValueError(f"Spectrum frame missing columns: {sorted(missing)}")
        wide = frame.pivot(index="wavelength", columns=["quantity", "variable"], values="value")
        wide = wide.sort_index()
        if wide.isna().to_numpy().any():
            raise ValueError("Spectrum frame does not cover every channel at every wavelength")
        return cls(
            wavelength=wide.index.to_numpy(dtype=float),
            channels={tuple(col): wide[col].to_numpy(dtype=float) for col in wide.columns},
        )

    @classmethod
    def from_records(cls, records: Iterable[Tuple[float, Channel, float]]) -> "SpectrumSample":
        """Build from ``(wavelength, (quantity, variable), value)`` triples."""
        rows = [(wl, tag[0], tag[1], value) for wl, tag, value in records]
        return cls.from_frame(pd.DataFrame(rows, columns=list(FRAME_COLUMNS)))

    @classmethod
    def coerce(cls, obj: Any) -> "SpectrumSample":
        if isinstance(obj, cls):
            return obj
        if isinstance(obj, pd.DataFrame):
            return cls.from_frame(obj)
        raise TypeError(
            f"Model returned {type(obj).__name__}, expected SpectrumSample or DataFrame"
        )

    def to_frame(self) -> pd.DataFrame:
        """Long-format frame, one row per (wavelength, channel)."""
        frames = [
            pd.DataFrame(
                {
                    "wavelength": self.wavelength,
                    "quantity": quantity,
                    "variable": variable,
                    "value": values,
                }
            )
            for (quantity, variable), values in self.channels.items()
        ]
        if not frames:
            return pd.DataFrame(columns=list(FRAME_COLUMNS))
        return pd.concat(frames, ignore_index=True)


@dataclass(frozen=True)
class ChannelSelection:
    """
    Channels to integrate and how to group them.

    Attributes
    ----------
    quantities : Tuple[str, ...]
        e.g. ("cross_section", "dichroism"); order fixes the interleaving
    variables : Tuple[str, ...]
        e.g. ("extinction", "absorption", "scattering")
    paired : bool
        If True, the quantities of one wavelength form one error group
    """

    quantities: Tuple[str, ...]
    variables: Tuple[str, ...]
    paired: bool = True

    def __post_init__(self):
        object.__setattr__(self, "quantities", tuple(self.quantities))
        object.__setattr__(self, "variables", tuple(self.variables))
        if not self.quantities or not self.variables:
            raise ValueError("ChannelSelection needs at least one quantity and one variable")

    @property
    def group_size(self) -> int:
        return len(self.quantities) if self.paired else 1

    @property
    def channels(self) -> List[Channel]:
        return [(q, v) for v in self.variables for q in self.quantities]


class IntegrandAdapter:
    """
    Callable from a canonical point to the flat weighted spectrum.

    Parameters
    ----------
    model : callable
        ``model(ParameterVector, configuration) -> SpectrumSample | DataFrame``
    names : sequence of str
        Parameter names in integration order
    transforms : sequence of DomainTransform
        One per parameter
    weights : WeightRegistry, optional
        Required when ``mode="expectation"``
    selection : ChannelSelection, optional
        Channels to integrate; None selects every channel of the first sample
        (unpaired)
    configuration : Any
        Passed through to the model untouched
    mode : str
        'expectation' (density-weighted) or 'mean' (unit weight)
    """

    def __init__(
        self,
        model: Callable,
        names: Sequence[str],
        transforms: Sequence[DomainTransform],
        weights: Optional[WeightRegistry] = None,
        selection: Optional[ChannelSelection] = None,
        configuration: Any = None,
        mode: str = "expectation",
    ):
        if len(names) != len(transforms):
            raise ValueError("names and transforms must have the same length")
        if mode not in ("expectation", "mean"):
            raise ValueError(f"Invalid mode: {mode}. Must be 'expectation' or 'mean'")
        if mode == "expectation" and weights is None:
            raise ValueError("A WeightRegistry is required in expectation mode")
        self.model = model
        self.names = tuple(names)
        self.transforms = list(transforms)
        self.weights = weights
        self.selection = selection
        self.configuration = configuration
        self.mode = mode

        self.n_calls = 0
        self.wavelength: Optional[np.ndarray] = None
        self._channel_set = None
        self._lock = threading.Lock()

    @property
    def ndim(self) -> int:
        return len(self.names)

    @property
    def output_dim(self) -> Optional[int]:
        """Flat output length, known after the first call."""
        if self.wavelength is None:
            return None
        return len(self.wavelength) * len(self.selection.channels)

    @property
    def lower(self) -> np.ndarray:
        return np.array([t.canonical_bounds[0] for t in self.transforms])

    @property
    def upper(self) -> np.ndarray:
        return np.array([t.canonical_bounds[1] for t in self.transforms])

    def physical(self, t: Sequence[float]) -> Tuple[ParameterVector, float]:
        """Map a canonical point to physical values and the Jacobian product."""
        t = np.atleast_1d(np.asarray(t, dtype=float))
        if t.shape != (self.ndim,):
            raise DimensionMismatchError(f"Expected a {self.ndim}-D point, got shape {t.shape}")
        values = []
        jacobian = 1.0
        for ti, transform in zip(t, self.transforms):
            values.append(float(transform.to_physical(ti)))
            jacobian *= float(transform.jacobian(ti))
        return ParameterVector(self.names, tuple(values)), jacobian

    def _check_shape(self, sample: SpectrumSample) -> None:
        channel_set = frozenset(sample.channels)
        with self._lock:
            if self.wavelength is None:
                if self.selection is None:
                    self.selection = ChannelSelection(
                        sample.quantities, sample.variables, paired=False
                    )
                missing = [c for c in self.selection.channels if c not in channel_set]
                if missing:
                    raise ModelEvaluationError(f"Model output lacks selected channels: {missing}")
                self.wavelength = sample.wavelength
                self._channel_set = channel_set
                logger.debug(
                    f"Integrand layout: {len(sample.wavelength)} wavelengths x "
                    f"{len(self.selection.channels)} channels"
                )
                return

        if channel_set != self._channel_set:
            raise ModelEvaluationError(
                f"Model channel set changed between calls: {sorted(channel_set)} "
                f"vs {sorted(self._channel_set)}"
            )
        if not np.array_equal(sample.wavelength, self.wavelength):
            raise ModelEvaluationError(
                f"Model wavelength grid changed between calls "
                f"({len(sample.wavelength)} vs {len(self.wavelength)} points)"
            )

    def evaluate_model(self, parameters: ParameterVector) -> SpectrumSample:
        """Run the model once and validate its output shape."""
        with self._lock:
            self.n_calls += 1
        try:
            raw = self.model(parameters, self.configuration)
        except Exception as e:
            raise ModelEvaluationError(f"Model failed at {parameters.as_dict()}: {e}") from e
        try:
            sample = SpectrumSample.coerce(raw)
        except (TypeError, ValueError) as e:
            raise ModelEvaluationError(
                f"Unusable model output at {parameters.as_dict()}: {e}"
            ) from e
        self._check_shape(sample)
        return sample

    def flatten(self, sample: SpectrumSample) -> np.ndarray:
        """Selected channels in integration layout."""
        blocks = []
        for variable in self.selection.variables:
            block = np.column_stack(
                [sample.channels[(quantity, variable)] for quantity in self.selection.quantities]
            )
            blocks.append(block.ravel())
        return np.concatenate(blocks)

    def unpack(self, flat: Sequence[float]) -> Dict[Channel, np.ndarray]:
        """Inverse of ``flatten``: ``{(quantity, variable): values}``."""
        if self.wavelength is None:
            raise ModelEvaluationError("Integrand layout unknown before the first model call")
        flat = np.asarray(flat, dtype=float)
        if flat.shape != (self.output_dim,):
            raise DimensionMismatchError(f"Expected {self.output_dim} values, got {flat.shape}")
        n_wl = len(self.wavelength)
        n_q = len(self.selection.quantities)
        out = {}
        for k, variable in enumerate(self.selection.variables):
            block = flat[k * n_wl * n_q : (k + 1) * n_wl * n_q].reshape(n_wl, n_q)
            for j, quantity in enumerate(self.selection.quantities):
                out[(quantity, variable)] = block[:, j].copy()
        return out

    def __call__(self, t: Sequence[float]) -> np.ndarray:
        parameters, jacobian = self.physical(t)
        sample = self.evaluate_model(parameters)
        flat = self.flatten(sample)

        if self.mode == "mean":
            density = 1.0
        else:
            density = self.weights.joint_density(parameters)
        if density == 0.0:
            # the Jacobian may be huge near open endpoints; keep 0 * J at 0
            return np.zeros_like(flat)
        return flat * (density * jacobian)
