# -*- coding: utf-8 -*-

"""
Linkio exceptions
"""

from typing import Optional


class LinkioError(Exception):
    """Base exception for all linkio errors"""
    pass

class InvalidDescriptor(LinkioError, ValueError):
    """Malformed or unsupported endpoint descriptor"""
    pass

class ResourceExhausted(LinkioError):
    """No free channel left in the registry"""
    pass

class TransportError(LinkioError):
    """OS-level open/bind/connect/accept or I/O failure of a transport"""

    def __init__(self, name: str, cause: Optional[BaseException] = None, message: str = ''):
        self.name = name
        self.cause = cause
        if not message:
            message = str(cause) if cause is not None else 'transport failure'
        super().__init__(f'{name}: {message}')

class PlatformNotSupportedError(LinkioError):
    """Platform not supported for async operations"""
    pass
