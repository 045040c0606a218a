"""Static site generator for folders of Markdown articles."""

__version__ = "0.1.0"
