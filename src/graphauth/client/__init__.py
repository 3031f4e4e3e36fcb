"""HTTP request execution against the target API."""

from graphauth.client.executor import RequestExecutor
from graphauth.client.response import extract_response_data, parse_error_envelope

__all__ = ["RequestExecutor", "extract_response_data", "parse_error_envelope"]
