"""Configuration of the completion loop."""

from dataclasses import dataclass, asdict, field
from typing import Any, Callable, Dict, Optional

__all__ = ['CompletionSettings', 'get_default_settings']


@dataclass
class CompletionSettings:
    """Options controlling :func:`qumulants.complete`.

    Attributes:
        max_iterations: Upper bound on completion rounds before giving up
        multithread: Derive missing equations in a thread pool
        max_workers: Thread pool size (None lets the executor decide)
        mix_choice: Picks the order of a term spanning components with
            different orders
        verbose: Print progress of every completion round
    """
    max_iterations: int = 100
    multithread: bool = False
    max_workers: Optional[int] = None
    mix_choice: Callable = field(default=max)
    verbose: bool = False

    def __post_init__(self):
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be at least 1, got {self.max_iterations}")

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'CompletionSettings':
        """Create settings from a dictionary, ignoring unknown keys."""
        known = {k: v for k, v in config.items() if k in cls.__dataclass_fields__}
        return cls(**known)

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to a plain dictionary."""
        return asdict(self)

    def override(self, **kwargs) -> 'CompletionSettings':
        """Copy with every non-None keyword replaced."""
        values = self.to_dict()
        values.update({k: v for k, v in kwargs.items() if v is not None})
        return CompletionSettings(**values)


def get_default_settings() -> CompletionSettings:
    """Get default completion settings."""
    return CompletionSettings()
