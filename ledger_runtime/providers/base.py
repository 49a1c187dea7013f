from abc import ABC, abstractmethod
from typing import Any

from ..core.confirmation.models import ConfirmationStatus


class LedgerRpc(ABC):
    """RPC capability for one ledger endpoint"""

    endpoint: str

    @abstractmethod
    async def get_latest_reference(self) -> Any:
        """Cheap read-only call returning the latest block reference"""
        pass

    @abstractmethod
    async def get_account_balance(self, account_id: str) -> int:
        """Balance of an account in base units"""
        pass

    @abstractmethod
    async def submit(self, signed_payload: Any) -> str:
        """Broadcast a signed payload and return its identifier"""
        pass

    @abstractmethod
    async def get_confirmation_status(self, identifier: str) -> ConfirmationStatus:
        """Current finality status for a submitted identifier"""
        pass

    async def aclose(self) -> None:
        """Release transport resources"""
        return None


class Signer(ABC):
    """Signs payloads; key material never passes through the runtime"""

    @abstractmethod
    async def sign(self, unsigned_payload: Any) -> Any:
        pass
