"""CollabHub workspace service - container workspaces kept in sync with the project tree."""

__version__ = "0.1.0"
