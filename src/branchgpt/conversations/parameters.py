"""Completion parameters shared by every completion of a conversation.

Each completion may use different parameters within the same conversation,
but a parameters value is never mutated in place: overrides such as
``with_n`` produce a new, re-validated value.

Example:
    ```python
    from branchgpt.conversations.parameters import (
        CompletionModel, CompletionParameters
    )

    parameters = CompletionParameters()
    assert parameters.temperature == 1.0
    assert parameters.n == 1
    assert parameters.model is CompletionModel.GPT35
    assert parameters.max_tokens == 512

    # Three samples for a single request
    sampled = parameters.with_n(3)

    # Temperature must be within [0.0, 2.0]
    CompletionParameters(temperature=2.1)  # raises ValidationError
    ```
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict

from branchgpt.exceptions import ValidationError

MIN_TEMPERATURE = 0.0
MAX_TEMPERATURE = 2.0
MAX_SAMPLES = 128


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class CompletionModel(Enum):
    """Chat models available for completions.

    The value of each member is the canonical identifier sent on the wire.
    """
    GPT35 = "gpt-3.5-turbo"
    GPT35_16K = "gpt-3.5-turbo-16k"
    GPT4 = "gpt-4"
    GPT4_32K = "gpt-4-32k"
    GPT4O = "gpt-4o"
    GPT4O_MINI = "gpt-4o-mini"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: "str | CompletionModel") -> "CompletionModel":
        """Resolve a member from its wire string or its name.

        Args:
            value: e.g. ``"gpt-4"``, ``"GPT4"`` or a CompletionModel

        Raises:
            ValidationError: If the value names no known model
        """
        if isinstance(value, cls):
            return value
        text = str(value)
        for model in cls:
            if text == model.value or text.upper() == model.name:
                return model
        raise ValidationError(
            f"Unknown completion model: {value!r}",
            context={"model": value, "valid_models": [m.value for m in cls]},
        )


@dataclass(frozen=True)
class CompletionParameters:
    """Validated parameters for a chat completion request.

    Attributes:
        temperature: Sampling temperature in [0.0, 2.0]
        n: Number of samples to request
        model: Model used for the completion
        max_tokens: Maximum number of tokens per generated response
    """
    temperature: float = 1.0
    n: int = 1
    model: CompletionModel = field(default=CompletionModel.GPT35)
    max_tokens: int = 512

    def __post_init__(self) -> None:
        if not isinstance(self.model, CompletionModel):
            object.__setattr__(self, "model", CompletionModel.parse(self.model))
        self._validate()

    def _validate(self) -> None:
        # NaN fails the chained comparison
        if (
            isinstance(self.temperature, bool)
            or not isinstance(self.temperature, (int, float))
            or not MIN_TEMPERATURE <= self.temperature <= MAX_TEMPERATURE
        ):
            raise ValidationError(
                f"Temperature must be between {MIN_TEMPERATURE} and {MAX_TEMPERATURE}",
                context={"temperature": self.temperature},
            )
        if not _is_int(self.n) or not 1 <= self.n <= MAX_SAMPLES:
            raise ValidationError(
                f"Sample count must be an integer between 1 and {MAX_SAMPLES}",
                context={"n": self.n},
            )
        if not _is_int(self.max_tokens) or self.max_tokens < 1:
            raise ValidationError(
                "max_tokens must be a positive integer",
                context={"max_tokens": self.max_tokens},
            )

    def with_n(self, n: int) -> "CompletionParameters":
        """Return a copy requesting ``n`` samples."""
        return self.clone(n=n)

    def clone(self, **overrides: Any) -> "CompletionParameters":
        """Create a copy of these parameters with optional overrides.

        Example:
            >>> base = CompletionParameters(temperature=0.7)
            >>> creative = base.clone(temperature=1.2, max_tokens=1024)
        """
        return replace(self, **overrides)

    def to_dict(self) -> Dict[str, Any]:
        """Convert parameters to dictionary for storage."""
        return {
            "temperature": self.temperature,
            "n": self.n,
            "model": self.model.value,
            "max_tokens": self.max_tokens,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CompletionParameters":
        """Create parameters from a dictionary, ignoring unknown keys.

        Missing keys take their default value. String values are converted
        (e.g. ``"0.5"``, ``"2"``); other values must already have the right
        type.

        Raises:
            ValidationError: If a value is invalid
        """
        valid_fields = {f.name for f in cls.__dataclass_fields__.values()}
        values = {k: v for k, v in data.items() if k in valid_fields}
        converters = {"temperature": float, "n": int, "max_tokens": int}
        for key, convert in converters.items():
            if isinstance(values.get(key), str):
                try:
                    values[key] = convert(values[key])
                except ValueError:
                    raise ValidationError(
                        f"Invalid value for {key}: {values[key]!r}",
                        context={key: values[key]},
                    ) from None
        return cls(**values)
