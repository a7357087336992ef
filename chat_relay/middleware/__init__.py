from .error_handler import create_http_exception_handler

__all__ = ["create_http_exception_handler"]
