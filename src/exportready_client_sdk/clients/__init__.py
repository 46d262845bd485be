from .action_client import ActionClient
from .passports_client import PassportsClient

__all__ = ["ActionClient", "PassportsClient"]
