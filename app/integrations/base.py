"""
Base ERP Client - Abstract base class for ERP integrations
"""
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any
from datetime import datetime, timedelta
from dataclasses import dataclass, field
from decimal import Decimal
import logging

from app.core.time_utils import utcnow

logger = logging.getLogger(__name__)


class ErpError(Exception):
    """Base error for ERP calls"""


class ErpAuthError(ErpError):
    pass


class ErpRpcError(ErpError):
    pass


class ErpConnectionError(ErpError):
    """Network failure or timeout while talking to the ERP"""


@dataclass
class ErpProduct:
    """
    Product record as the ERP reports it
    """
    id: int
    default_code: str = ""
    name: str = ""
    barcode: Optional[str] = None
    qty_available: Decimal = Decimal("0")
    active: bool = True

    # Raw data
    raw_payload: Dict[str, Any] = field(default_factory=dict)


class BaseErpClient(ABC):
    """
    Abstract base class for ERP integrations.
    Subclasses implement login(); the session is cached for SESSION_TTL seconds
    and dropped on any authentication failure.
    """
    ERP_NAME: str = "base"
    SESSION_TTL: int = 3600

    def __init__(self, session_ttl: Optional[int] = None):
        if session_ttl is not None:
            self.SESSION_TTL = session_ttl
        self.session_id: Optional[int] = None
        self._session_expires_at: Optional[datetime] = None

    # ========== Authentication ==========

    @abstractmethod
    async def login(self) -> int:
        """
        Perform the ERP login call
        Returns: session / user id
        """
        pass

    def is_session_expired(self) -> bool:
        """Check if the cached session is missing or older than SESSION_TTL"""
        if not self.session_id or not self._session_expires_at:
            return True
        return utcnow() >= self._session_expires_at

    def drop_session(self):
        self.session_id = None
        self._session_expires_at = None

    async def authenticate(self) -> int:
        """Return a valid session, logging in again when the cached one expired"""
        if not self.is_session_expired():
            return self.session_id

        logger.info(f"[{self.ERP_NAME}] Authenticating...")
        try:
            session_id = await self.login()
        except ErpError:
            self.drop_session()
            raise

        if not session_id:
            self.drop_session()
            raise ErpAuthError(f"{self.ERP_NAME} rejected the credentials")

        self.session_id = session_id
        self._session_expires_at = utcnow() + timedelta(seconds=self.SESSION_TTL)
        logger.info(f"[{self.ERP_NAME}] Authenticated (session {session_id})")
        return session_id

    # ========== Products ==========

    @abstractmethod
    async def get_product(self, erp_id: int) -> Optional[ErpProduct]:
        """
        Get a product by its ERP id; None when it does not exist
        """
        pass

    @abstractmethod
    async def search_product_by_barcode(self, barcode: str) -> Optional[ErpProduct]:
        pass

    @abstractmethod
    async def update_stock(self, erp_id: int, quantity: Decimal) -> bool:
        pass

    @abstractmethod
    async def update_location(self, erp_id: int, location_code: str) -> bool:
        pass

    # ========== Health ==========

    @abstractmethod
    async def test_connection(self) -> bool:
        pass

    @abstractmethod
    async def get_system_info(self) -> Dict[str, Any]:
        pass

    # ========== Utilities ==========

    def _log_api_call(self, service: str, method: str, status_code: int):
        """Log API call for debugging"""
        logger.debug(f"[{self.ERP_NAME}] {service}.{method} -> {status_code}")
