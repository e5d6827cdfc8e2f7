"""
Model Pricing Table for Crucible.

USD per one million tokens, used when the generation service does not
report a cost itself. Local Ollama models cost nothing; hosted models
routed through an Ollama-compatible gateway carry their list price.

Values are approximate list prices and only need to be good enough for
budget enforcement.
"""

from typing import Dict

# Format: model_name -> {input, output} in USD per 1M tokens
MODEL_PRICING: Dict[str, Dict[str, float]] = {
    # =========================================================================
    # Hosted models (gateway-routed)
    # =========================================================================
    "gpt-4o": {"input": 2.50, "output": 10.00},
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "claude-3-5-haiku": {"input": 0.80, "output": 4.00},
    "claude-3-5-sonnet": {"input": 3.00, "output": 15.00},
    "gemini-1.5-flash": {"input": 0.075, "output": 0.30},
    "mistral-large": {"input": 2.00, "output": 6.00},
    "deepseek-chat": {"input": 0.27, "output": 1.10},

    # =========================================================================
    # Local models (Ollama) - free to run
    # =========================================================================
    "llama3.2:1b": {"input": 0.0, "output": 0.0},
    "llama3.2:3b": {"input": 0.0, "output": 0.0},
    "qwen2.5:7b": {"input": 0.0, "output": 0.0},
    "gemma3:4b": {"input": 0.0, "output": 0.0},
    "gemma3:12b": {"input": 0.0, "output": 0.0},
}


def estimate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """
    Estimate the cost of one call.

    Unknown models are priced at zero; a model tag such as
    ``gpt-4o-mini:latest`` falls back to its base name.
    """
    pricing = MODEL_PRICING.get(model) or MODEL_PRICING.get(model.split(":")[0])
    if pricing is None:
        return 0.0
    return (
        max(input_tokens, 0) * pricing["input"]
        + max(output_tokens, 0) * pricing["output"]
    ) / 1_000_000
