"""stackfix — scan deployment targets for drift and fix what can be fixed."""

__version__ = "0.1.0"
