"""HTTP front end: REST routes and the stateless MCP endpoint."""
