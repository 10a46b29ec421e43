"""
ACME HTTP-01 challenge responder for the plaintext listener.

While a certificate is being issued, the ACME client drops a token file
into the challenge directory and the CA fetches

    http://<host>/.well-known/acme-challenge/<token>

This handler serves those files and passes every other request on.
"""

import logging
import os
import re
from typing import Callable

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder, not_found


logger = logging.getLogger(__name__)


CHALLENGE_PATH_PREFIX = "/.well-known/acme-challenge/"

_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


class ChallengeHandler:
    """Serve HTTP-01 key authorizations from challenge_dir, else delegate."""

    def __init__(self, challenge_dir: str, fallback: Callable[[HTTPRequest], HTTPResponse]):
        self.challenge_dir = challenge_dir
        self.fallback = fallback

    def __call__(self, request: HTTPRequest) -> HTTPResponse:
        if request.method not in ("GET", "HEAD") or not request.path.startswith(CHALLENGE_PATH_PREFIX):
            return self.fallback(request)

        token = request.path[len(CHALLENGE_PATH_PREFIX):]
        if not _TOKEN_PATTERN.match(token):
            return not_found()

        token_path = os.path.join(self.challenge_dir, token)
        try:
            with open(token_path, "rb") as f:
                key_authorization = f.read()
        except FileNotFoundError:
            logger.info(f"Unknown ACME challenge token requested: {token}")
            return not_found()

        logger.info(f"Answered ACME challenge for {request.host or '-'}")
        return (ResponseBuilder()
            .content_type("text/plain")
            .body(key_authorization)
            .build())
