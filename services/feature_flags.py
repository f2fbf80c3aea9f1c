# User value: This file gates optional backend behavior so operators can roll it out safely.
import os

BOOL_FLAG_VALUES = {"1", "0", "true", "false", "yes", "no", "on", "off"}


def _flag(name: str, default: bool = False) -> bool:
    raw = str(os.getenv(name, "1" if default else "0")).strip().lower()
    return raw in {"1", "true", "yes", "on"}


FEATURE_PRESTORE_IMAGES = _flag("FEATURE_PRESTORE_IMAGES", True)


# User value: asks the backend to cache attachment images while candidates load, so extraction starts faster.
def is_prestore_images_enabled() -> bool:
    return FEATURE_PRESTORE_IMAGES
