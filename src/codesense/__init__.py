"""
Codesense - per-project code analysis daemon.

Runs one analysis engine per project directory and serves completions,
type lookups and definitions to editor plug-ins over loopback HTTP.
"""

__version__ = "0.4.2"
