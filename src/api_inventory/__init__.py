"""Static HTTP endpoint inventory for JavaScript/TypeScript routing code."""

__version__ = "0.1.0"
