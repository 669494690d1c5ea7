"""Tunnel participation: layer encryption, message framing, duplicate detection and build request handling."""

__version__ = "0.1.0"
__all__ = ["acceptor", "buildrequest", "encryption", "frame", "processor", "util"]