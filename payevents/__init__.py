"""Event store and delivery substrate for the payment gateway."""

__version__ = "0.1.0"
