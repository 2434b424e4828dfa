from .workspace import Workspace
from .message import Message

__all__ = [
    "Workspace",
    "Message",
]
