"""NUT Monitor - periodic UPS polling over the Network UPS Tools protocol."""

__version__ = "1.0.0"
