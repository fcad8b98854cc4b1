# ERP Integrations Package
from .base import (
    BaseErpClient,
    ErpProduct,
    ErpError,
    ErpAuthError,
    ErpRpcError,
    ErpConnectionError,
)
from .odoo import OdooClient

__all__ = [
    "BaseErpClient",
    "ErpProduct",
    "ErpError",
    "ErpAuthError",
    "ErpRpcError",
    "ErpConnectionError",
    "OdooClient",
]
