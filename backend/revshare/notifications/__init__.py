from .dispatcher import notify
from . import messages

__all__ = ["notify", "messages"]
