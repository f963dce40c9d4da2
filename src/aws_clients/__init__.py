"""
AWS client access shared by every stack operation.
"""

from .session import AwsClients
from .throttle import AbortError, RateLimiter

__all__ = ["AwsClients", "RateLimiter", "AbortError"]
