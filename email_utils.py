# -*- coding: utf-8 -*-
"""
Email utilities: MIME part classification, header rendering, and
materializing printable parts as temporary files.
Uses the modern EmailMessage API (Python 3.6+).
"""

import dataclasses
import email
import email.message
import email.policy
import email.utils
import logging
import mimetypes
import os
import re
import uuid

import config_data
import html_utils
from errors import ExtractError

logger = logging.getLogger(__name__)

EMAIL_POLICY = email.policy.EmailPolicy(utf8=True)

UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")

# control characters XML documents can't hold; tab and newline stay
CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


# ============================================================================
# Part variants
# ============================================================================


@dataclasses.dataclass
class InlinePart:
    content_type: str
    filename: str
    part: email.message.Message


@dataclasses.dataclass
class AttachmentPart:
    content_type: str
    filename: str
    part: email.message.Message


@dataclasses.dataclass(frozen=True)
class ExtractedArtifact:
    path: str
    kind: str
    seq: int


def iter_parts(msg):
    """
    Walk the leaf parts of a message.

    Yields:
        AttachmentPart for parts with an attachment disposition,
        InlinePart for everything else
    """
    for part in msg.walk():
        if part.is_multipart():
            continue
        content_type = part.get_content_type()
        if part.get_content_disposition() == "attachment":
            yield AttachmentPart(content_type, part.get_filename(), part)
        else:
            filename = part.get_param("name") or part.get_filename()
            if isinstance(filename, tuple):
                filename = email.utils.collapse_rfc2231_value(filename)
            yield InlinePart(content_type, filename, part)


def artifact_kind(content_type):
    if content_type == "text/html":
        return "html"
    if content_type == "text/plain":
        return "text"
    if content_type == "application/pdf":
        return "pdf"
    if content_type.startswith("image/"):
        return "image"
    return "other"


def attachment_suffix(filename, content_type):
    """
    Build the path suffix for a PDF or image part from its declared filename.

    The extension is kept only when it is a known one for the declared
    type; otherwise it is derived from the type.
    """
    stem, ext = "", ""
    if filename:
        base = os.path.basename(filename.replace("\\", "/"))
        stem, ext = os.path.splitext(base)
        stem = UNSAFE_FILENAME_CHARS.sub("_", stem).strip("._")[:64]

    known = config_data.attachment_extensions.get(content_type, [])
    ext = ext.lower()
    if ext not in known:
        ext = known[0] if known else (mimetypes.guess_extension(content_type) or ".bin")

    return f"-{stem or 'attachment'}{ext}"


def classify_part(variant, html_as_text=False):
    """
    Decide which suffix a part is materialized with.

    Args:
        variant: InlinePart or AttachmentPart
        html_as_text: Whether HTML parts become plain text artifacts

    Returns:
        Suffix string, or None if the part is not printed
    """
    match artifact_kind(variant.content_type):
        case "html":
            return config_data.text_suffix if html_as_text else config_data.html_suffix
        case "text":
            return config_data.text_suffix
        case "pdf" | "image":
            return attachment_suffix(variant.filename, variant.content_type)
        case _:
            return None


# ============================================================================
# Header rendering
# ============================================================================


def _addresses(msg, name):
    values = [str(v) for v in msg.get_all(name, [])]
    return ",".join(addr for _, addr in email.utils.getaddresses(values) if addr)


def render_header_block(msg):
    """
    Render the presentation header printed above the message body.
    Absent fields are left out and control characters are dropped.
    """
    fields = [
        ("Date:\t\t", str(msg.get("Date", "") or "")),
        ("From:\t\t", _addresses(msg, "From")),
        ("To:\t\t", _addresses(msg, "To")),
        ("Cc:\t\t", _addresses(msg, "Cc")),
        ("Subject:\t", str(msg.get("Subject", "") or "")),
    ]
    lines = [
        f"{label}{CONTROL_CHARS.sub('', value)}\n" for label, value in fields if value
    ]
    return "".join(lines) + config_data.header_separator


# ============================================================================
# Email parsing
# ============================================================================


def decode_part(part):
    """
    Decode a single MIME part to string.

    Args:
        part: MIME part

    Returns:
        Decoded string, empty if the part has no payload
    """
    payload = part.get_payload(decode=True)
    if not payload:
        return ""

    charset = part.get_content_charset() or "utf-8"

    for encoding in [charset, "utf-8", "iso-8859-1"]:
        try:
            return payload.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            continue

    return payload.decode("utf-8", errors="replace")


def render_part(variant, suffix, header, bleach_html=True):
    """
    Produce the bytes written for a classified part.

    Text and HTML bodies are prefixed with the header block; an empty
    body yields an empty artifact so it is never printed.
    """
    kind = artifact_kind(variant.content_type)

    if kind not in ("html", "text"):
        return variant.part.get_payload(decode=True) or b""

    body = decode_part(variant.part)
    if not body.strip():
        return b""

    if kind == "html" and suffix == config_data.text_suffix:
        return (header + html_utils.html_to_text(body)).encode("utf-8")
    if kind == "html":
        return html_utils.prepare_html(body, header, bleach_html=bleach_html).encode("utf-8")
    return (header + body).encode("utf-8")


# ============================================================================
# Artifact bookkeeping
# ============================================================================


class ArtifactSet:
    """Insertion-ordered artifacts of one run, unique by path"""

    def __init__(self):
        self._artifacts = {}

    def add(self, artifact):
        """Insert an artifact; returns False if its path is already present"""
        if artifact.path in self._artifacts:
            return False
        self._artifacts[artifact.path] = artifact
        return True

    def __contains__(self, path):
        return path in self._artifacts

    def __iter__(self):
        return iter(list(self._artifacts.values()))

    def __len__(self):
        return len(self._artifacts)

    def paths(self):
        return list(self._artifacts)

    def clear(self):
        self._artifacts.clear()


def new_stem():
    return uuid.uuid4().hex


def write_artifact(path, content):
    """
    Create the file and write the content in full.

    Raises:
        ExtractError: On any I/O failure; a partial file is removed
    """
    try:
        with open(path, "wb") as f:
            f.write(content)
    except OSError as e:
        try:
            os.remove(path)
        except OSError as cleanup_error:
            logger.debug("Could not remove partial file %s: %s", path, cleanup_error)
        raise ExtractError(f"Writing {path} failed: {e}")


def Extractor(config, artifacts, stem_fn=None):
    """
    Factory: Create handler that materializes the printable parts of a message.

    Handler signature: handler(envelope) -> list of newly added ExtractedArtifact

    Args:
        config: MonitorConfig with temp_directory, html_as_text, bleach_html
        artifacts: ArtifactSet shared by the whole run
        stem_fn: Optional () -> str, defaults to a random uuid4 hex stem
    """
    stem_fn = stem_fn or new_stem

    def handler(envelope):
        stem = os.path.join(config.temp_directory, stem_fn())
        added = []

        for literal in envelope.literals:
            msg = email.message_from_bytes(literal, policy=EMAIL_POLICY)
            header = render_header_block(msg)
            logger.debug("Message %d: %s", envelope.seq, msg.get("Subject", ""))

            for variant in iter_parts(msg):
                suffix = classify_part(variant, html_as_text=config.html_as_text)
                if suffix is None:
                    logger.debug("Skipping %s part", variant.content_type)
                    continue

                path = stem + suffix
                if path in artifacts:
                    logger.debug("Already extracted %s", path)
                    continue

                content = render_part(variant, suffix, header, bleach_html=config.bleach_html)
                write_artifact(path, content)

                kind = "text" if suffix == config_data.text_suffix else artifact_kind(variant.content_type)
                artifact = ExtractedArtifact(path, kind, envelope.seq)
                artifacts.add(artifact)
                added.append(artifact)

        return added

    return handler
