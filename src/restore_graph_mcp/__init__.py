"""NuGet restore graph generation via MSBuild, served over MCP."""

__version__ = "0.1.0"
