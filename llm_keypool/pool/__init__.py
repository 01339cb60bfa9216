from .credentials import CredentialPool
from .selector import Selector

__all__ = ["CredentialPool", "Selector"]
