"""IdeaGraph CLI.

Command-line interface for extracting and reviewing findings graphs.
"""

__version__ = "1.0.0"
