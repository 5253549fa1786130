"""turnsense: sentiment and outcome capture for assistant conversations."""

__version__ = "0.1.0"
