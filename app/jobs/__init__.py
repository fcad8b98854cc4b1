# Jobs Package - Scheduled background tasks
from .maintenance import MaintenanceScheduler
from .print_worker import PrintWorker, SpoolPrinter

__all__ = ["MaintenanceScheduler", "PrintWorker", "SpoolPrinter"]
