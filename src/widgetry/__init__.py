"""widgetry - dynamic widget and plugin registry."""

__version__ = "0.1.0"
