"""ArchGraph: static architecture graph for software projects."""

__version__ = "0.4.0"
