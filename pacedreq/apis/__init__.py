"""
Ready-to-use API clients built on the request engine.
"""

from .form_api import ApiClient, encode_form_request, form_batch_request

__all__ = ['ApiClient', 'encode_form_request', 'form_batch_request']
