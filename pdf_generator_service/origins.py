"""Cross-origin policy: no Origin, or a subdomain of one trusted parent domain."""

import re
from typing import Optional


def origin_regex(trusted_domain: str) -> str:
    """
    Regex for CORSMiddleware; is_origin_allowed applies the same pattern.

    Only http and https origins with a strict subdomain of trusted_domain
    match, optionally with a port. The bare parent domain does not.
    """
    domain = re.escape(trusted_domain.lower().lstrip("."))
    return rf"(?i)^https?://([a-z0-9-]+\.)+{domain}(:\d+)?$"


def is_origin_allowed(origin: Optional[str], trusted_domain: str) -> bool:
    """
    Decide whether a request's Origin header may use the API.

    Requests without an Origin (curl, server-to-server, mobile apps) are
    allowed. Anything else must match origin_regex, so every origin that
    passes here also receives CORS headers.
    """
    if not origin:
        return True
    return re.fullmatch(origin_regex(trusted_domain), origin.strip()) is not None
