"""CleanRota - housekeeping task scheduling and cleaning rotation."""

__version__ = "0.1.0"
