"""
Scale and frame-rate ladders for the target-size searches
"""

from dataclasses import dataclass
from typing import Iterator, Sequence, Tuple

DEFAULT_SCALE_LADDER = (1.0, 0.9, 0.8, 0.7, 0.6, 0.5, 0.4, 0.3)
DEFAULT_FRAME_RATES = (15, 12, 10, 8, 6)


def _validate_descending(values: Sequence[float], name: str) -> None:
    if not values:
        raise ValueError(f"{name} must not be empty")
    for previous, current in zip(values, values[1:]):
        if current >= previous:
            raise ValueError(f"{name} must be strictly descending: {list(values)}")


@dataclass(frozen=True)
class ScaleLadder:
    """Fixed descending scale factors relative to the source dimensions"""
    factors: Tuple[float, ...] = DEFAULT_SCALE_LADDER

    def __post_init__(self):
        factors = tuple(float(f) for f in self.factors)
        _validate_descending(factors, "scale ladder")
        for factor in factors:
            if not 0 < factor <= 1:
                raise ValueError(f"Scale factor out of range (0, 1]: {factor}")
        object.__setattr__(self, 'factors', factors)

    def __iter__(self) -> Iterator[float]:
        return iter(self.factors)

    def __len__(self) -> int:
        return len(self.factors)

    def box_for(self, scale: float, width: int, height: int, min_dimension: int) -> Tuple[int, int]:
        """Bounding box for an image trial: floored at min_dimension, never above source."""
        return (
            scaled_dimension(width, scale, min_dimension),
            scaled_dimension(height, scale, min_dimension),
        )


@dataclass(frozen=True)
class FrameRateLadder:
    """Fixed descending candidate frame rates for animated trials"""
    rates: Tuple[int, ...] = DEFAULT_FRAME_RATES

    def __post_init__(self):
        rates = tuple(int(r) for r in self.rates)
        _validate_descending(rates, "frame-rate ladder")
        if rates[-1] <= 0:
            raise ValueError(f"Frame rates must be positive: {list(rates)}")
        object.__setattr__(self, 'rates', rates)

    def __iter__(self) -> Iterator[int]:
        return iter(self.rates)

    def __len__(self) -> int:
        return len(self.rates)


def scaled_dimension(source: int, scale: float, minimum: int) -> int:
    """round(source * scale) clamped to [minimum, source]; small sources keep their size."""
    value = max(minimum, int(round(source * scale)))
    return max(1, min(source, value))


def animated_width(source_width: int, scale: float, min_width: int) -> int:
    """Animated trials only fix the width; the encoder derives the height."""
    return max(min_width, int(round(source_width * scale)))


def fit_inside(width: int, height: int, box_width: int, box_height: int) -> Tuple[int, int]:
    """Largest size with the source aspect ratio that fits in the box without upscaling."""
    if width <= box_width and height <= box_height:
        return width, height
    ratio = min(box_width / width, box_height / height)
    return max(1, int(round(width * ratio))), max(1, int(round(height * ratio)))
