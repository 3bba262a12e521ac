"""enginepack - build and package a plugin for several engine versions."""

__version__ = "0.1.0"
