from .receipt_check import router as receipt_check_router
from .receipt_files import router as receipt_files_router

__all__ = ["receipt_check_router", "receipt_files_router"]
