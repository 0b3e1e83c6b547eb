from pathlib import Path

from .errors import MissingFile, PayloadTooLarge, UnsupportedType
from .models import ValidationPolicy, base_name

# Container signatures: .docx is a zip package, .doc an OLE2 compound file.
SIGNATURES = {
    ".docx": b"PK\x03\x04",
    ".doc": b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1",
}


def extension_of(filename: str) -> str:
    name = base_name(filename)
    if "." not in name.strip("."):
        return ""
    return "." + name.rsplit(".", 1)[-1].lower()


def validate_upload(filename: str | None, declared_size: int | None, policy: ValidationPolicy) -> str:
    """Check an upload against the policy before anything touches the disk.

    Returns the lower-cased extension (with its leading dot). ``declared_size``
    may be ``None`` when the transport does not know it up front; the size
    limit is then enforced while the upload is streamed to storage.
    """
    if not filename or not base_name(filename):
        raise MissingFile("upload carried no filename")
    ext = extension_of(filename)
    if ext not in policy.allowed_extensions:
        raise UnsupportedType(f"extension {ext or '<none>'} not in {list(policy.allowed_extensions)}")
    if declared_size is not None and declared_size > policy.max_bytes:
        raise PayloadTooLarge(f"declared size {declared_size} exceeds {policy.max_bytes} bytes")
    return ext


def check_signature(path: Path, ext: str) -> None:
    magic = SIGNATURES.get(ext)
    if magic is None:
        return
    with path.open("rb") as f:
        head = f.read(len(magic))
    if head != magic:
        raise UnsupportedType(f"content of {path.name} does not look like a {ext} file")
