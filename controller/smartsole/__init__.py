"""SmartSole diagnostic session controller."""

__version__ = "0.1.0"
