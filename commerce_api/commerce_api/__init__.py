"""HTTP surface of the course commerce platform."""

__version__ = "0.1.0"
