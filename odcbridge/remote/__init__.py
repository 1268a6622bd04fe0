"""Remote input (ECP) collaborator."""

from .ecp import EcpClient, EcpError, Key

__all__ = ["EcpClient", "EcpError", "Key"]
