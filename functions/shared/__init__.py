# Shared utilities package
from .catalog import Catalog, get_catalog
from .errors import APIError
from .response_utils import error_response, html_response, success_response

__all__ = [
    "Catalog",
    "get_catalog",
    "error_response",
    "html_response",
    "success_response",
    "APIError",
]
