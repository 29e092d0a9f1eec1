"""
chuk-mcp-intervisibility: Terrain Intervisibility Analysis MCP Server

Determines which pairs of geographic sites can see one another across real
terrain (Copernicus DEM), with Earth-curvature and refraction correction,
and summarises the resulting visibility network with graph statistics.
"""
