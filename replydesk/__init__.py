"""ReplyDesk: AI drafting and auto-send decisions for support mailboxes."""

from .__version__ import __version__

__all__ = ["__version__"]
