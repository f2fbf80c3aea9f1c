import logging
import os
from typing import List

from services.feature_flags import BOOL_FLAG_VALUES

logger = logging.getLogger("extractor.startup")

BOOL_FLAGS = ("FEATURE_PRESTORE_IMAGES",)
POSITIVE_NUMBERS = ("POLL_INTERVAL_SEC", "REQUEST_TIMEOUT_SEC", "RECORDS_PER_PAGE")


def _is_blank(value: str | None) -> bool:
    return value is None or not str(value).strip()


def _validate_api_url(value: str | None, key: str, errors: List[str]) -> None:
    if _is_blank(value):
        return
    if not (value.startswith("http://") or value.startswith("https://")):
        errors.append(f"{key} must start with http:// or https://")


def _validate_positive_number(key: str, errors: List[str]) -> None:
    raw = os.getenv(key)
    if _is_blank(raw):
        return
    try:
        value = float(raw)
    except ValueError:
        errors.append(f"{key} must be a number, got {raw!r}")
        return
    if value <= 0:
        errors.append(f"{key} must be greater than zero")


def _validate_bool_flag_env(key: str, errors: List[str]) -> None:
    raw = os.getenv(key)
    if _is_blank(raw):
        return
    if str(raw).strip().lower() not in BOOL_FLAG_VALUES:
        errors.append(f"{key} must be one of {sorted(BOOL_FLAG_VALUES)}")


def validate_startup_env() -> None:
    errors: List[str] = []
    warnings: List[str] = []

    _validate_api_url(os.getenv("EXTRACTOR_API_URL"), "EXTRACTOR_API_URL", errors)
    for key in POSITIVE_NUMBERS:
        _validate_positive_number(key, errors)
    for key in BOOL_FLAGS:
        _validate_bool_flag_env(key, errors)

    if _is_blank(os.getenv("EXTRACTOR_API_URL")):
        warnings.append("EXTRACTOR_API_URL is not set; using http://localhost:8000")

    if errors:
        for err in errors:
            logger.error("startup_env_invalid %s", err)
        raise RuntimeError("Startup env validation failed: " + "; ".join(errors))

    for warning in warnings:
        logger.warning("startup_env_warning %s", warning)

    logger.info("startup_env_validated keys=%s", ["EXTRACTOR_API_URL", *POSITIVE_NUMBERS, *BOOL_FLAGS])
