# ------------------------------ IMPORTS ------------------------------
import os
import re
from typing import Optional

from core.exceptions import ValidationError

# ASCII digits only; \d would also admit other scripts' digits
SECURITY_CODE_PATTERN = re.compile(r"[0-9]{4}")

# ------------------------------ VALIDATORS ------------------------------

def is_sequential(code: str) -> bool:
    """True for runs like 1234 or 9876 where each digit steps by the same +1/-1."""
    steps = {int(b) - int(a) for a, b in zip(code, code[1:])}
    return steps in ({1}, {-1})

def validate_security_code(code: Optional[str]) -> str:
    """Return the code if it can be used on the portal, else raise ValidationError."""
    if not isinstance(code, str) or not SECURITY_CODE_PATTERN.fullmatch(code):
        raise ValidationError("Security code must be exactly 4 digits")
    if is_sequential(code):
        raise ValidationError("Security code cannot be a sequence of consecutive digits (e.g. 1234 or 4321)")
    return code

def validate_credentials(identifier: Optional[str], secret: Optional[str]) -> None:
    if not identifier or not secret:
        raise ValidationError("Username and password are required")

def validate_retries(retries: Optional[int]) -> Optional[int]:
    """None means the configured default; anything else must be a positive integer."""
    if retries is None:
        return None
    if isinstance(retries, bool) or not isinstance(retries, int) or retries < 1:
        raise ValidationError("retries must be an integer of at least 1")
    return retries

def validate_batch_file(file_path: Optional[str], allowed_dir: str) -> str:
    """Return the absolute path of a spreadsheet that lives inside ``allowed_dir``."""
    if not file_path:
        raise ValidationError("A spreadsheet file path or shipment rows are required")

    root = os.path.realpath(allowed_dir)
    resolved = os.path.realpath(os.path.join(root, file_path))
    if os.path.commonpath([root, resolved]) != root:
        raise ValidationError("Spreadsheet must be inside the upload directory")
    if not os.path.isfile(resolved):
        raise ValidationError(f"Spreadsheet file not found: {file_path}")
    return resolved

# ------------------------------ END OF FILE ------------------------------
