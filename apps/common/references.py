import string
import time

from django.utils.crypto import get_random_string

REFERENCE_ALPHABET = string.ascii_uppercase + string.digits


def generate_reference(prefix):
    """``PREFIX-<epoch ms>-<9 random chars>``, e.g. ``ORD-1718000000000-7KQ2M9XAB``."""
    return f"{prefix}-{int(time.time() * 1000)}-{get_random_string(9, allowed_chars=REFERENCE_ALPHABET)}"
