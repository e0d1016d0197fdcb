"""
Token estimation for model selection.

Approximates prompt and completion volume before a model is called.
"""

import math
from dataclasses import dataclass
from enum import Enum

# Polish text tokenizes into more tokens than English for the same size
INPUT_INFLATION_FACTOR = 1.3


class OutputComplexity(Enum):
    """Expected length of the model's answer."""
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


OUTPUT_TOKENS = {
    OutputComplexity.SHORT: 150,
    OutputComplexity.MEDIUM: 500,
    OutputComplexity.LONG: 1200,
}


@dataclass(frozen=True)
class TokenEstimate:
    """Estimated token usage for one model call."""
    input: int
    output: int

    def __post_init__(self):
        if self.input < 0:
            raise ValueError("input tokens cannot be negative")
        if self.output < 0:
            raise ValueError("output tokens cannot be negative")

    @property
    def total(self) -> int:
        """Total tokens (input + output)."""
        return self.input + self.output


def estimate_token_usage(data_size: float, output_complexity: OutputComplexity) -> TokenEstimate:
    """Estimate tokens for a prompt of ``data_size`` and the expected answer length.

    Args:
        data_size: Size of the injected context in token-proxy units
        output_complexity: Expected answer length bucket

    Returns:
        TokenEstimate with inflated input and the bucket's output estimate
    """
    input_tokens = math.ceil(max(data_size, 0) * INPUT_INFLATION_FACTOR)
    return TokenEstimate(input=input_tokens, output=OUTPUT_TOKENS[output_complexity])
