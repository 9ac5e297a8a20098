"""In-memory world model plus the bsp_tool-backed decoder that produces it."""

from bspbatch.world.model import Face, Leaf, Model, SurfaceFlags, Vertex, World, WorldTexture

__all__ = ["Face", "Leaf", "Model", "SurfaceFlags", "Vertex", "World", "WorldTexture"]
