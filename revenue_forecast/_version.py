"""Version information for revenue_forecast."""

__version__ = "0.1.0"
