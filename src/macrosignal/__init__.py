"""MACROSIGNAL — Macro Signal Engine.

Turns macroeconomic indicator histories and asset price histories into
per-currency regime diagnoses, rolling benchmark correlations, directional
trading biases and self-validating quality checks.
"""

__version__ = "0.1.0"
