"""ENS name normalization.

Only second-level .eth names can be registered; subdomain labels are
validated separately. Full UTS-46 normalization belongs to the chain
library, so this only handles the cheap structural checks.
"""

import re

from src.errors.domain import InvalidNameError

ETH_SUFFIX = ".eth"
MIN_LABEL_LENGTH = 3
SECONDS_PER_YEAR = 31_557_600  # 365.25 days

_FORBIDDEN = re.compile(r"[\s/\\:@#?%]")


def normalize_eth_name(raw: str) -> tuple[str, str]:
    """Return (full_name, label) for a second-level .eth name.

    Raises:
        InvalidNameError: If the name is empty, too short or nested.
    """
    name = raw.strip().lower()
    if name.endswith(ETH_SUFFIX):
        label = name[: -len(ETH_SUFFIX)]
    else:
        label = name
    if not label:
        raise InvalidNameError(raw, "the name is empty")
    if "." in label:
        raise InvalidNameError(raw, "only second-level .eth names are supported")
    if _FORBIDDEN.search(label):
        raise InvalidNameError(raw, "the name contains invalid characters")
    if len(label) < MIN_LABEL_LENGTH:
        raise InvalidNameError(raw, f"labels need at least {MIN_LABEL_LENGTH} characters")
    return f"{label}{ETH_SUFFIX}", label


def normalize_subdomain_label(raw: str) -> str:
    label = raw.strip().lower()
    if not label or "." in label or _FORBIDDEN.search(label):
        raise InvalidNameError(raw, "subdomain labels must be a single non-empty label")
    return label


def years_to_seconds(years: int) -> int:
    return years * SECONDS_PER_YEAR
