"""BlackSwan MCP server: latest Flare/Core agent runs over MCP tools and REST."""

SERVICE_NAME = "blackswan-mcp-server"
__version__ = "0.1.0"
