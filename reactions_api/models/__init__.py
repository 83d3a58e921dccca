from .base import Base, BaseDbModel
from .db import Post, PostReaction


__all__ = ["Base", "BaseDbModel", "Post", "PostReaction"]
