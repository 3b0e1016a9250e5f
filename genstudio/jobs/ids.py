"""Provider-facing correlation ids and per-job seeds."""

import base64
import hashlib
import re
import secrets
import time

PROMPT_PREFIX_CHARS = 50
PROVIDER_JOB_ID_LENGTH = 16
NONCE_SUFFIX_CHARS = 8
SEED_UPPER_BOUND = 2**31 - 1

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


def generate_provider_job_id(prompt: str) -> str:
    """Short, practically-unique token mixing a prompt prefix, time and a nonce.

    Only the first ``PROMPT_PREFIX_CHARS`` characters of the prompt feed the
    digest, and the digest (not the text) is what ends up in the id. Not a
    primary key: the store assigns the durable job id.
    """
    nonce = secrets.token_bytes(16)
    material = b"-".join(
        [
            prompt[:PROMPT_PREFIX_CHARS].encode("utf-8"),
            str(time.time_ns()).encode("ascii"),
            nonce,
        ]
    )
    digest = hashlib.sha256(material).digest()
    body = _NON_ALNUM.sub("", base64.urlsafe_b64encode(digest).decode("ascii"))
    return f"{body[:PROVIDER_JOB_ID_LENGTH]}-{nonce.hex()[:NONCE_SUFFIX_CHARS]}"


def generate_seed() -> int:
    """Uniform integer in ``[0, 2**31 - 1)``, fresh for every job."""
    return secrets.randbelow(SEED_UPPER_BOUND)
